
from os import stat

from PIL import Image
import argh

from quadtree import Quadtree, largest_power_of_two


def largest_resolution(image: Image.Image) -> int:
    """
    The largest power of two that fits inside both sides of [image].
    """
    return largest_power_of_two(min(image.width, image.height))


def compress(
    input_path,
    output_path,
    resolution: int | None = None,
    leaves: int | None = None,
    tolerance: int | None = None,
    rotate: int = 0,
) -> Quadtree:
    """
    Builds a quadtree from the image at [input_path], prunes it,
        and saves the decompressed result to [output_path].

    If [leaves] is given, the tolerance is the smallest one that
        brings the tree down to that many leaves.
    """
    print(f"Start {input_path}")
    with Image.open(input_path) as image:
        image = image.convert("RGBA")

        if resolution is None:
            resolution = largest_resolution(image)

        tree = Quadtree(image, resolution)

    print(f"QuadTree building finished, {tree.leaf_count()} leaves")

    if leaves is not None:
        tolerance = tree.ideal_prune(leaves)
        print(f"Tolerance for {leaves} leaves: {tolerance}")

    if tolerance is not None:
        tree.prune(tolerance)
        print(f"Pruned to {tree.leaf_count()} leaves")

    for _ in range(rotate % 4):
        tree.clockwise_rotate()

    tree.decompress().save(output_path)
    print("Image painting finished")

    # Compare the disk-size of the original image
    #   and the compressed image.
    input_size = stat(input_path).st_size
    output_size = stat(output_path).st_size

    print(f"Original size: {input_size} bytes")
    print(f"Compressed size: {output_size} bytes")
    print(f"End {input_path}")

    return tree


@argh.arg("--resolution", type=int, help="side of the square to compress")
@argh.arg("--leaves", type=int, help="number of leaves to prune down to")
@argh.arg("--tolerance", type=int, help="pruning tolerance")
@argh.arg("--rotate", type=int, help="clockwise quarter turns")
def run(
    input_path,
    output_path,
    resolution=None,
    leaves=None,
    tolerance=None,
    rotate=0,
) -> None:
    compress(input_path, output_path, resolution, leaves, tolerance, rotate)


def main():
    argh.dispatch_command(run)


# Runner Code
if __name__ == "__main__":
    main()
