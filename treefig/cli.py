"""
Command line entry point.

Options follow the single-dash style of the FigTree command line, e.g.::

    treefig -graphic PNG -width 320 -newickexport test.tree test.png
"""

import argparse
import io
import logging
import posixpath
import sys

import httpx

from .colors import color_map_from_time_points, parse_color_map
from .errors import FormatDetectionError, TreefigError
from .export import create_graphic, default_graphic_file_name
from .render import GRAPHIC_FORMATS
from .settings import command_line_settings

logger = logging.getLogger(__name__)

USAGE = "treefig [options] <tree-file-name> [<graphic-file-name>]"
EXAMPLES = """\
  Example: treefig -graphic PDF test.tree test.pdf
  Example: treefig -graphic PNG -width 320 -height 320 test.tree test.png
  Example: treefig -graphic SVG -colors V704_0026_232:#3333ff,V704_0026_512:#ff0000 test.tree test.svg
"""


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that prints usage and exits with status 1 on malformed arguments."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, "%s: error: %s\n" % (self.prog, message))


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="treefig",
        usage=USAGE,
        description="Draw a Newick or Nexus tree as a graphic, optionally re-exporting it as Newick and Nexus.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument("files", nargs="*", help=argparse.SUPPRESS)
    parser.add_argument(
        "-graphic", choices=list(GRAPHIC_FORMATS), help="produce a graphic with the given format"
    )
    parser.add_argument("-width", type=int, default=800, help="the width of the graphic in pixels")
    parser.add_argument("-height", type=int, default=600, help="the height of the graphic in pixels")
    parser.add_argument("-url", action="store_true", help="the input file is a URL")
    parser.add_argument("-help", "-h", action="store_true", help="option to print this message")
    parser.add_argument("-newickexport", action="store_true", help="export the displayed tree in Newick format")
    parser.add_argument("-nexusexport", action="store_true", help="export the displayed tree in Nexus format")
    parser.add_argument("-stdout", action="store_true", help="write the image file to stdout")
    parser.add_argument(
        "-colors",
        metavar="text:color",
        help="comma delimited list of colors to associate with a text pattern (e.g. V704_0026_232:#3333ff) "
        "OR use the keyword 'extract' to extract from file name (expected format is hyphen delimited)",
    )
    parser.add_argument("-avg_seq_length", type=int, help="average length of sequences")
    parser.add_argument("-debug", action="store_true", help="enable debug logging")
    return parser


def fetch_url(url: str) -> io.StringIO:
    """Download a tree file into memory."""
    logger.info("Fetching %s", url)
    try:
        response = httpx.get(url, follow_redirects=True, timeout=30.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise FormatDetectionError(url, str(e)) from e
    return io.StringIO(response.text)


def url_file_name(url: str) -> str:
    """Last path segment of a URL, e.g. `tree.nwk` for `https://example.org/data/tree.nwk?raw=1`."""
    try:
        return posixpath.basename(httpx.URL(url).path)
    except httpx.InvalidURL:
        return ""


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stderr,  ## stdout may carry the graphic
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.help:
        parser.print_help()
        return 0

    try:
        overrides = command_line_settings(args.avg_seq_length)
    except ValueError as e:
        logger.error("%s", e)
        return 1

    color_map = {}
    extract_colors = args.colors == "extract"
    if args.colors is not None and not extract_colors:
        try:
            color_map = parse_color_map(args.colors)
        except TreefigError as e:
            logger.error("%s", e.full_message)
            return 1

    if len(args.files) == 0:  ## no tree file specified
        parser.print_help()
        return 0

    if args.graphic is None:
        logger.error("No graphic format given; use -graphic with one of %s", ", ".join(GRAPHIC_FORMATS))
        parser.print_usage(sys.stderr)
        return 1

    tree_file_name = args.files[0]
    if extract_colors:
        color_map = color_map_from_time_points(url_file_name(tree_file_name) if args.url else tree_file_name)

    if args.stdout:
        graphic_file_name = None
    elif len(args.files) > 1:
        graphic_file_name = args.files[1]
    elif args.url:
        base_name = url_file_name(tree_file_name)
        if not base_name:
            logger.error("Can't derive a graphic file name from %s; give one after the URL", tree_file_name)
            return 1
        graphic_file_name = default_graphic_file_name(base_name)
    else:
        graphic_file_name = default_graphic_file_name(tree_file_name)

    try:
        source = fetch_url(tree_file_name) if args.url else tree_file_name
        create_graphic(
            args.graphic,
            args.width,
            args.height,
            source,
            graphic_file_name,
            overrides=overrides,
            write_newick=args.newickexport,
            write_nexus=args.nexusexport,
            color_map=color_map,
        )
    except TreefigError as e:
        logger.error("%s", e.full_message)
        return 1
    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
