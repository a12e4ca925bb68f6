
from collections import deque
import logging
import sys
from typing import Iterator, TextIO

from PIL import Image
import numpy as np


logger = logging.getLogger(__name__)

Color = tuple[int, int, int, int]

# The color returned for queries that fall outside of the tree.
DEFAULT_COLOR: Color = (255, 255, 255, 255)

# Bounds of the tolerance domain searched by [Quadtree.ideal_prune].
#   [MAX_TOLERANCE] is the distance between pure black and pure white.
MIN_TOLERANCE = 0
MAX_TOLERANCE = 3 * (255 * 255)

# Positions of the children inside [QuadtreeNode.children].
NW, NE, SW, SE = 0, 1, 2, 3


def color_distance(first: Color, second: Color) -> int:
    """
    The squared distance between two colors over the red, green
        and blue channels. Alpha does not contribute.
    """
    return (second[0] - first[0]) ** 2 \
        + (second[1] - first[1]) ** 2 \
        + (second[2] - first[2]) ** 2


def average_color(colors: list[Color]) -> Color:
    # Per-channel arithmetic mean, truncated like the source pixels are.
    count = len(colors)
    r, g, b, a = 0, 0, 0, 0
    for r_, g_, b_, a_ in colors:
        r += r_
        g += g_
        b += b_
        a += a_

    return (r // count, g // count, b // count, a // count)


def is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def largest_power_of_two(value: int) -> int:
    # The largest power of two not greater than [value], for [value] >= 1.
    return 1 << (value.bit_length() - 1)


class QuadtreeNode:
    # The color of the region covered by this node.
    #   Leaves hold the exact pixel color, internal nodes
    #   hold the average of their four children.
    color: Color

    # The children of the current node, ordered NW, NE, SW, SE.
    #   If the node is a leaf, then this is None.
    children: list["QuadtreeNode"] | None

    def __init__(self, color: Color, children=None):
        self.color = color
        self.children = children

    @property
    def is_leaf(self) -> bool:
        return self.children is None

    def copy(self) -> "QuadtreeNode":
        if self.children is None:
            return QuadtreeNode(self.color)

        return QuadtreeNode(
            self.color, [child.copy() for child in self.children])

    def __repr__(self):
        if self.children is None:
            return f"QuadtreeNode({self.color})"
        return f"QuadtreeNode({self.color}, {self.children})"


class Quadtree:
    """
    A square image stored as a tree of quadrants.

    Every internal node has exactly four children and holds the average
        color of them. The tree can be pruned with a tolerance, which
        replaces uniform enough subtrees by a single leaf, and rotated
        without going back to the pixels.
    """

    # The root of the tree, None while the tree is empty.
    root: QuadtreeNode | None

    # The side length of the square covered by [root].
    _resolution: int

    def __init__(self, source: Image.Image | None = None,
                 resolution: int | None = None):
        self.root = None
        self._resolution = 0

        if source is not None:
            if resolution is None:
                resolution = largest_power_of_two(
                    min(source.width, source.height))
            self.build(source, resolution)

    @property
    def resolution(self) -> int:
        return self._resolution

    @property
    def is_empty(self) -> bool:
        return self.root is None

    # Lifecycle

    def clear(self) -> None:
        # Nodes are owned exclusively by their parent,
        #   dropping the root releases the whole tree.
        self.root = None
        self._resolution = 0

    def copy(self) -> "Quadtree":
        other = Quadtree()
        other.assign(self)
        return other

    def assign(self, other: "Quadtree") -> "Quadtree":
        if other is self:
            return self

        self.clear()
        self._resolution = other._resolution
        if other.root is not None:
            self.root = other.root.copy()

        return self

    def __copy__(self) -> "Quadtree":
        return self.copy()

    def __deepcopy__(self, memo) -> "Quadtree":
        return self.copy()

    def __eq__(self, other):
        if not isinstance(other, Quadtree):
            return NotImplemented
        if self._resolution != other._resolution:
            return False

        # Walk both trees side by side.
        stack = deque([(self.root, other.root)])
        while len(stack) > 0:
            first, second = stack.pop()

            if first is None or second is None:
                if first is not second:
                    return False
                continue

            if first.color != second.color:
                return False
            if first.is_leaf != second.is_leaf:
                return False
            if first.children is not None and second.children is not None:
                stack.extend(zip(first.children, second.children))

        return True

    __hash__ = None

    # Construction

    def build(self, source: Image.Image, resolution: int) -> None:
        """
        Builds the tree for the [resolution] by [resolution] block
            at the top-left corner of [source].
        """
        if not is_power_of_two(resolution):
            raise ValueError(
                f"resolution must be a power of two, got {resolution}")
        if source.width < resolution or source.height < resolution:
            raise ValueError(
                f"source of size {source.width}x{source.height} is smaller "
                f"than the resolution {resolution}")

        self.clear()

        # Get the image as an array of signed 16-bit integers.
        #   Channel sums of four 8-bit values do not fit in 8 bits.
        image_array = np.array(source.convert("RGBA")).astype(np.int16)

        self.root = self._build(image_array, 0, 0, resolution)
        self._resolution = resolution

        logger.debug("Built quadtree of resolution %d", resolution)

    def _build(self, image_array: np.ndarray,
               x: int, y: int, size: int) -> QuadtreeNode:
        if size == 1:
            r, g, b, a = (int(channel) for channel in image_array[y, x])
            return QuadtreeNode((r, g, b, a))

        half = size // 2
        children = [
            self._build(image_array, x,        y,        half),
            self._build(image_array, x + half, y,        half),
            self._build(image_array, x,        y + half, half),
            self._build(image_array, x + half, y + half, half),
        ]

        return QuadtreeNode(
            average_color([child.color for child in children]), children)

    # Queries

    def get_pixel(self, x: int, y: int) -> Color:
        if self.root is None \
                or not (0 <= x < self._resolution and 0 <= y < self._resolution):
            return DEFAULT_COLOR

        current = self.root
        size = self._resolution
        while current.children is not None:
            # [size] becomes the side length of the children,
            #   which is also the midpoint of the current region.
            size //= 2

            if y < size:
                quadrant = NW if x < size else NE
            else:
                quadrant = SW if x < size else SE

            current = current.children[quadrant]
            x %= size
            y %= size

        return current.color

    def decompress(self) -> Image.Image:
        if self.root is None:
            return Image.new("RGBA", (0, 0))

        output_array = np.zeros(
            (self._resolution, self._resolution, 4), dtype=np.uint8)

        # Depth-first traversal painting every leaf on the output.
        for x, y, size, node in self._walk():
            if node.children is None:
                output_array[y:y + size, x:x + size] = node.color

        return Image.fromarray(output_array)

    def leaf_count(self) -> int:
        return sum(1 for _, _, _, node in self._walk() if node.is_leaf)

    def print_tree(self, out: TextIO | None = None) -> None:
        """
        Prints every leaf in preorder as `x y size color`.
        """
        if out is None:
            out = sys.stdout

        for x, y, size, node in self._walk():
            if node.is_leaf:
                print(x, y, size, node.color, file=out)

    def _walk(self) -> Iterator[tuple[int, int, int, QuadtreeNode]]:
        # Preorder traversal yielding (x, y, size, node) for every node.
        if self.root is None:
            return

        stack = deque([(0, 0, self._resolution, self.root)])
        while len(stack) > 0:
            x, y, size, current = stack.pop()
            yield x, y, size, current

            if (children := current.children) is not None:
                assert len(children) == 4
                half = size // 2
                stack.extend(reversed([
                    (x,        y,        half, children[NW]),
                    (x + half, y,        half, children[NE]),
                    (x,        y + half, half, children[SW]),
                    (x + half, y + half, half, children[SE]),
                ]))

    # Rotation

    def clockwise_rotate(self) -> None:
        if self.root is not None:
            self._clockwise_rotate(self.root)

    def _clockwise_rotate(self, node: QuadtreeNode) -> None:
        children = node.children
        if children is None:
            return

        # Every slot takes the subtree one quadrant counter-clockwise of it.
        node.children = [children[SW], children[NW],
                         children[SE], children[NE]]

        for child in node.children:
            self._clockwise_rotate(child)

    # Pruning

    def prune(self, tolerance: int) -> None:
        """
        Replaces every subtree whose leaves are all within [tolerance]
            of the subtree's average color by a single leaf.

        Nodes are visited top-down, so each one is judged against the
            leaves it had before this call.
        """
        _check_tolerance(tolerance)
        if self.root is None:
            return

        stack = deque([self.root])
        while len(stack) > 0:
            current = stack.pop()
            if current.children is None:
                continue

            if self._is_prunable(current, tolerance):
                current.children = None
            else:
                stack.extend(current.children)

        logger.debug("Pruned with tolerance %d", tolerance)

    def prune_size(self, tolerance: int) -> int:
        """
        The number of leaves the tree would have after
            `prune(tolerance)`. The tree is left untouched.
        """
        _check_tolerance(tolerance)
        if self.root is None:
            return 0

        return self._prune_size(self.root, tolerance)

    def _prune_size(self, node: QuadtreeNode, tolerance: int) -> int:
        if node.children is None or self._is_prunable(node, tolerance):
            return 1

        return sum(self._prune_size(child, tolerance)
                   for child in node.children)

    def ideal_prune(self, num_leaves: int,
                    min_tolerance: int = MIN_TOLERANCE,
                    max_tolerance: int = MAX_TOLERANCE) -> int:
        """
        The smallest tolerance for which pruning leaves at most
            [num_leaves] leaves.
        """
        if num_leaves < 1:
            raise ValueError(f"num_leaves must be at least 1, got {num_leaves}")
        if self.root is None:
            return min_tolerance

        return self._search_tolerance(num_leaves, min_tolerance, max_tolerance)

    def _search_tolerance(self, num_leaves: int,
                          min_tolerance: int, max_tolerance: int) -> int:
        # [prune_size] never grows with the tolerance, so the answer
        #   is the lower bound of the tolerances that fit [num_leaves].
        low, high = min_tolerance, max_tolerance
        while low < high:
            middle = (low + high) // 2
            size = self._prune_size(self.root, middle)
            logger.debug("Tolerance %d gives %d leaves", middle, size)

            if size <= num_leaves:
                high = middle
            else:
                low = middle + 1

        return low

    @staticmethod
    def _is_prunable(node: QuadtreeNode, tolerance: int) -> bool:
        # Every leaf below [node], not only its children,
        #   has to be close enough to the average.
        average = node.color
        stack = deque([node])
        while len(stack) > 0:
            current = stack.pop()

            if (children := current.children) is not None:
                stack.extend(children)
            elif color_distance(average, current.color) > tolerance:
                return False

        return True


def _check_tolerance(tolerance: int) -> None:
    if tolerance < 0:
        raise ValueError(f"tolerance must not be negative, got {tolerance}")
