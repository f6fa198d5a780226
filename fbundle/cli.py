import argparse
import sys
from pathlib import Path
from typing import List, Optional

from rich.markup import escape

from .config import DEFAULT_BUNDLE_NAME, DEFAULT_DST_EXT, BundleConfig, unescape_separator
from .errors import RunError
from .log import console, log, setup_logging
from .orchestrator import run


def path_type(path_str: str) -> Path:
    """Convert string to Path and verify it exists and is a directory."""
    path = Path(path_str)
    if not path.exists():
        raise argparse.ArgumentTypeError(f"Path '{path_str}' does not exist.")
    if not path.is_dir():
        raise argparse.ArgumentTypeError(f"Path '{path_str}' is not a directory.")
    return path


def build_parser() -> argparse.ArgumentParser:
    description = """
    Bundle multiple files into a single output file.

    Recursively searches the source directory for files matching the given
    glob patterns and concatenates them into one file. Each file is preceded
    by the separator line and its path relative to the source directory.
    """
    epilog = """
    Examples:
      fbundle --file-sep='---' -g '*.txt'
      fbundle -s ./src --file-sep='---' -g '**/*.rs' -g '!**/*_test.rs'
      fbundle -n my_bundle --file-sep='---FILE---' -g '**/*.md'
      fbundle -f '===' -g '**/*.{js,ts}' -g '!**/node_modules/**' -g '!**/dist/**'

    Glob patterns are case-insensitive unless --case-sensitive is given.
    """
    parser = argparse.ArgumentParser(
        prog="fbundle",
        description=description,
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # --- Input/Output ---
    parser.add_argument(
        "-n",
        "--bundle-name",
        default=DEFAULT_BUNDLE_NAME,
        help=f"Name of the output bundle file (default: {DEFAULT_BUNDLE_NAME}).",
        metavar="NAME",
    )
    parser.add_argument(
        "-s",
        "--src-dir",
        type=path_type,
        default=Path("."),
        help="Source directory to search for files (default: current directory).",
        metavar="DIR",
    )
    parser.add_argument(
        "-o",
        "--out-dir",
        type=Path,
        default=Path("."),
        help="Directory for the bundle file (default: current directory).",
        metavar="DIR",
    )
    parser.add_argument(
        "-e",
        "--dst-ext",
        default=DEFAULT_DST_EXT,
        help=f"Extension of the bundle file (default: {DEFAULT_DST_EXT}).",
        metavar="EXT",
    )
    parser.add_argument(
        "-f",
        "--file-sep",
        required=True,
        help="Separator written before each file. A literal '\\n' becomes a newline. "
        "Use --file-sep=SEP when SEP starts with '-'.",
        metavar="SEP",
    )
    parser.add_argument(
        "-g",
        "--src-globs",
        action="extend",
        nargs="+",
        required=True,
        help="Glob patterns selecting source files; prefix with '!' to exclude. "
        "May be repeated.",
        metavar="PATTERN",
    )

    # --- Behavior Options ---
    behavior_group = parser.add_argument_group("Behavior Options")
    behavior_group.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Number of parallel file readers (default: CPU count).",
    )
    behavior_group.add_argument(
        "--case-sensitive",
        action="store_true",
        help="Match glob patterns case-sensitively.",
    )
    behavior_group.add_argument(
        "-L",
        "--follow-symlinks",
        action="store_true",
        help="Follow symbolic links (cycles are detected and skipped).",
    )
    behavior_group.add_argument(
        "--gitignore",
        action="store_true",
        help="Skip paths listed in the source directory's .gitignore unless a glob "
        "pattern selects them.",
    )
    behavior_group.add_argument(
        "--no-progress",
        action="store_true",
        help="Do not show a progress bar while reading files.",
    )
    behavior_group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging for detailed execution information.",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> BundleConfig:
    return BundleConfig(
        file_sep=unescape_separator(args.file_sep),
        patterns=tuple(args.src_globs),
        bundle_name=args.bundle_name,
        src_dir=args.src_dir,
        out_dir=args.out_dir,
        dst_ext=args.dst_ext,
        case_sensitive=args.case_sensitive,
        follow_symlinks=args.follow_symlinks,
        respect_gitignore=args.gitignore,
        jobs=args.jobs,
        show_progress=not args.no_progress,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Bundle files according to command-line arguments; return exit code."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    config = config_from_args(args)

    console.print("[bold blue]Starting file bundling[/]")
    console.print(f"Source directory: [green]{escape(str(config.src_dir))}[/]")
    console.print(f"Output file: [green]{escape(str(config.output_path))}[/]")
    console.print(f"Glob patterns: [cyan]{escape(', '.join(config.patterns))}[/]")

    try:
        result = run(config)
    except RunError as e:
        log.error(f"Error [{e.phase}]: {e.message}")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/]")
        return 130

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/] {escape(str(warning))}", highlight=False)
    console.print(
        f"[bold green]✓[/] Bundle created at: [blue]{escape(str(result.output_path))}[/]. "
        f"{result.bundled_count} files, {result.bytes_written} bytes, "
        f"{len(result.warnings)} warnings in {result.elapsed:.2f}s."
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
