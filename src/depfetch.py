"""depfetch - transitive dependency installer

    Installs each named package with every dependency it pulls in and prints
    the combined class path.

    Returns:
        int: Exit code
"""
import logging
import os
import sys

from args import parse_args
from common.logging_utils import configure_logging, extra_context, is_debug_enabled, Timer
from constants import Constants, ExitCodes, _load_yaml_config, apply_config
from repos.system import RepositorySystem

logger = logging.getLogger(__name__)


def load_pkgs_file(file_name):
    """Loads the package locators from a file.

    Blank lines and lines starting with ``#`` are skipped.

    Args:
        file_name (str): File path containing the list of packages.

    Returns:
        list: List of package locators
    """
    try:
        with open(file_name, encoding='utf-8') as file:
            return [line.strip() for line in file if line.strip() and not line.strip().startswith("#")]
    except FileNotFoundError as e:
        logging.error("File not found: %s, aborting", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
    except IOError as e:
        logging.error("IO error: %s, aborting", e)
        sys.exit(ExitCodes.FILE_ERROR.value)


def build_pkglist(args):
    """Collect locators from -p and -l, keeping first-seen order."""
    pkglist = []
    for url in args.SINGLE or []:
        pkglist.append(url.strip())
    for file_name in args.LIST_FROM_FILE or []:
        pkglist.extend(load_pkgs_file(file_name))
    return list(dict.fromkeys(u for u in pkglist if u))


def create_system(args):
    """Build the repository system from CLI flags (CLI wins over config)."""
    return RepositorySystem(
        package_root=args.PACKAGE_ROOT or Constants.PACKAGE_ROOT,
        info=args.INFO,
        reinstall=args.REINSTALL,
        update=args.UPDATE,
        install_existing=args.INSTALL_EXISTING,
        pkg_index_root=args.INDEX_ROOT or Constants.PACKAGE_INDEX_ROOT,
    )


def install_all(system, pkglist, include_tests=False, include_runtime=False):
    """Install every locator in ``pkglist``.

    Returns:
        tuple: (class path entries in first-seen order, list of error strings)
    """
    errors = []
    for url in pkglist:
        pkg = system.add_package(url)
        if pkg is None:
            errors.append(f"{url}: unable to add package")
            continue
        if include_tests:
            pkg.include_tests = True
        if include_runtime:
            pkg.include_runtime = True
        with Timer() as t:
            err = system.install_package(pkg, None)
        if is_debug_enabled(logger):
            logger.debug(
                "Root package installed",
                extra=extra_context(
                    event="install",
                    component="cli",
                    action="install_package",
                    outcome="success" if err is None else "error",
                    target=url,
                    duration_ms=t.duration_ms(),
                )
            )
        if err is not None:
            errors.append(f"{url}: {err}")
        else:
            # Populates the system-wide class path as a side effect
            pkg.get_class_path()
    return system.get_class_path(), errors


def write_class_path(entries, output=None):
    """Print the class path or write it to ``output``."""
    text = os.pathsep.join(entries)
    if output:
        try:
            with open(output, "w", encoding="utf-8") as file:
                file.write(text + "\n")
        except OSError as e:
            logging.error("Unable to write output file %s: %s", output, e)
            sys.exit(ExitCodes.FILE_ERROR.value)
        logging.info("Class path written to %s", output)
    else:
        print(text)


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    # Honor CLI --loglevel by passing it to centralized logger via env
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging(log_file=args.LOG_FILE)

    apply_config(_load_yaml_config(args.CONFIG))

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main")
        )

    pkglist = build_pkglist(args)
    if not pkglist:
        logging.warning("No packages found in the input list.")
        sys.exit(ExitCodes.SUCCESS.value)

    system = create_system(args)
    entries, errors = install_all(system, pkglist, args.INCLUDE_TESTS, args.INCLUDE_RUNTIME)
    write_class_path(entries, args.OUTPUT)

    if errors:
        for err in errors:
            logging.error("Install failed: %s", err)
        sys.exit(ExitCodes.INSTALL_ERROR.value)
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
