#!/usr/bin/env python3
"""
Command line interface for scadbatch.

Usage:
    python -m scadbatch FILE.scad -o OUTPUT [options]

The output suffix selects the format: stl, off, amf (3-D solids), dxf, svg
(2-D drawings), csg, ast, term, echo (text dumps) or png (image).

Examples:
    # Export a solid
    python -m scadbatch part.scad -o part.stl

    # Override a variable and write a make dependency file
    python -m scadbatch part.scad -o part.stl -D 'size=20' -d part.deps

    # Render a preview image from a given viewpoint
    python -m scadbatch part.scad -o part.png --camera=0,0,0,55,0,25,140 --imgsize=800,600
"""

import argparse
import platform
import sys
from typing import List, Optional

from . import __version__
from .camera import Camera
from .geometry import engines_available
from .pipeline import BatchOptions, RenderMode, cmdline
from .printutils import print_deprecation, print_message, set_debug
from .settings import RenderSettings


class _ArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with status 1, like every other failed run."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog='scadbatch',
        description='Batch evaluation and export of solid modeling scripts',
    )
    parser.add_argument('input', nargs='?', help='input script')
    parser.add_argument('-o', dest='outputs', action='append', default=[], metavar='FILE',
                        help='output file; the suffix selects the format')
    parser.add_argument('-s', dest='stl_outputs', action='append', default=[], metavar='FILE',
                        help=argparse.SUPPRESS)
    parser.add_argument('-x', dest='dxf_outputs', action='append', default=[], metavar='FILE',
                        help=argparse.SUPPRESS)
    parser.add_argument('-d', dest='deps', metavar='FILE',
                        help='write a make dependency file (geometry outputs only)')
    parser.add_argument('-m', dest='make_command', metavar='MAKE_COMMAND',
                        help='command run to create missing dependencies')
    parser.add_argument('-D', dest='definitions', action='append', default=[],
                        metavar='VAR=VAL', help='variable assignment (can be repeated)')
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--render', action='store_true',
                      help='for png output, render the full geometry')
    mode.add_argument('--preview', nargs='?', const='', metavar='throwntogether',
                      help='for png output, render a preview (default)')
    parser.add_argument('--csglimit', type=int, metavar='N',
                        help='limit on normalized CSG elements for previews')
    parser.add_argument('--camera', metavar='PARAMS',
                        help='translate_x,y,z,rot_x,y,z,dist or eye_x,y,z,center_x,y,z')
    parser.add_argument('--autocenter', action='store_true',
                        help='center the image on the geometry')
    parser.add_argument('--viewall', action='store_true',
                        help='fit the image to the geometry')
    parser.add_argument('--imgsize', metavar='W,H', help='image width and height in pixels')
    parser.add_argument('--projection', metavar='o|p', help='(o)rtho or (p)erspective')
    parser.add_argument('--debug', action='store_true', help='print debug messages')
    parser.add_argument('--version', action='store_true', help='print the version and exit')
    parser.add_argument('--info', action='store_true',
                        help='print information about the installation and exit')
    return parser


def print_info() -> None:
    import matplotlib
    import numpy
    import shapely
    import trimesh

    print(f"scadbatch version {__version__}")
    print(f"Python: {platform.python_version()} ({platform.system()})")
    print(f"numpy: {numpy.__version__}")
    print(f"trimesh: {trimesh.__version__}")
    print(f"shapely: {shapely.__version__}")
    print(f"matplotlib: {matplotlib.__version__}")
    engines = sorted(engines_available())
    print(f"Boolean engines: {', '.join(engines) if engines else 'none'}")


def _output_file(args) -> Optional[str]:
    if args.stl_outputs:
        print_deprecation("The -s option is deprecated. Use -o instead.")
    if args.dxf_outputs:
        print_deprecation("The -x option is deprecated. Use -o instead.")
    outputs = args.outputs + args.stl_outputs + args.dxf_outputs
    if len(outputs) > 1:
        raise ValueError("Only one output file may be specified.")
    return outputs[0] if outputs else None


def _camera(args) -> Camera:
    camera = Camera.parse(args.camera)
    if args.projection:
        camera.set_projection(args.projection)
    camera.viewall = args.viewall
    camera.autocenter = args.autocenter
    return camera


def _render_mode(args) -> RenderMode:
    if args.render:
        return RenderMode.FULL
    if args.preview == 'throwntogether':
        return RenderMode.THROWNTOGETHER
    return RenderMode.PREVIEW


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"scadbatch version {__version__}")
        return 0
    if args.info:
        print_info()
        return 0

    set_debug(args.debug)
    settings = RenderSettings.from_env()
    settings.make_command = args.make_command
    if args.csglimit is not None:
        settings.csg_term_limit = args.csglimit

    try:
        output_file = _output_file(args)
        camera = _camera(args)
        if args.imgsize:
            camera.set_pixel_size(args.imgsize)
            settings.img_width, settings.img_height = camera.pixel_size
    except ValueError as e:
        print_message(f"ERROR: {e}")
        return 1

    if output_file is None:
        print_message("ERROR: No output file given; interactive mode is not available.")
        return 1
    if args.input is None:
        print_message("ERROR: An input file is required.")
        return 1

    options = BatchOptions(
        input_file=args.input,
        output_file=output_file,
        deps_file=args.deps,
        definitions=args.definitions,
        mode=_render_mode(args),
        camera=camera,
        settings=settings,
    )
    return cmdline(options)


if __name__ == '__main__':
    sys.exit(main())
