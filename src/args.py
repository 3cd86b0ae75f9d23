"""Argument parsing functionality for depfetch."""

import argparse


def build_parser():
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="depfetch",
        description=(
            "depfetch - install packages and their transitive dependencies from git, scp, "
            "plain URLs and Maven repositories, then print the resulting class path"
        ),
        add_help=True,
    )

    input_group = parser.add_mutually_exclusive_group(required=True)
    input_group.add_argument("-p", "--package",
                             dest="SINGLE",
                             help="Package locator, e.g. mvn://group/artifact/version (repeatable)",
                             action="append", type=str)
    input_group.add_argument("-l", "--load_list",
                             dest="LIST_FROM_FILE",
                             help="Load package locators from a file, one per line",
                             action="append", type=str)

    parser.add_argument("--root",
                        dest="PACKAGE_ROOT",
                        help="Directory packages are installed under",
                        action="store", type=str)
    parser.add_argument("--index-root",
                        dest="INDEX_ROOT",
                        help="Shared directory for package tag files",
                        action="store", type=str)
    parser.add_argument("--reinstall",
                        dest="REINSTALL",
                        help="Back up existing package directories and fetch everything again",
                        action="store_true")
    parser.add_argument("--update",
                        dest="UPDATE",
                        help="Update installed packages from their source (e.g. git pull)",
                        action="store_true")
    parser.add_argument("--install-existing",
                        dest="INSTALL_EXISTING",
                        help="Re-initialize packages from directories already on disk",
                        action="store_true")
    parser.add_argument("--info",
                        dest="INFO",
                        help="Report install progress at info level",
                        action="store_true")
    parser.add_argument("--include-tests",
                        dest="INCLUDE_TESTS",
                        help="Also resolve test scoped dependencies of the named packages",
                        action="store_true")
    parser.add_argument("--include-runtime",
                        dest="INCLUDE_RUNTIME",
                        help="Also resolve runtime scoped dependencies of the named packages",
                        action="store_true")

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Write the class path to this file instead of stdout",
                        action="store",
                        type=str)
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
