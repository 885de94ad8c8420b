"""omniswitch CLI - keep several versions of a tool installed and switch between them"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import traceback

from . import __version__
from .common_utils import print_header, safe_print
from .config import ROOT_ENV_VAR, ConfigManager
from .core import Omniswitch
from .errors import OmniswitchError
from .i18n import _
from .versions import looks_like_spec, parse_spec

COMMANDS = {"install", "uninstall", "list", "switch", "which", "config"}


def create_parser():
    """Creates and configures the argument parser."""
    epilog_parts = [
        _("💡 Quick Start:"),
        _("  omniswitch install sqlx-cli@0.7.2     # Build and activate a version"),
        _("  omniswitch install sqlx-cli@0.6.3     # Another one, side by side"),
        _("  omniswitch sqlx-cli@0.6.3             # Switch the active version"),
        _("  omniswitch list                       # Installed versions, * = active"),
        _("  omniswitch uninstall sqlx-cli@0.7.2   # Remove an inactive version"),
        "",
        _("The store root defaults to a per-user data directory; set {} to move it.").format(
            ROOT_ENV_VAR
        ),
        "",
        _("Version: {}").format(__version__),
    ]
    parser = argparse.ArgumentParser(
        prog="omniswitch",
        description=_("🔀 Install several versions of the same tool and switch between them"),
        formatter_class=argparse.RawTextHelpFormatter,
        epilog="\n".join(epilog_parts),
    )
    parser.add_argument(
        "-v", "--version", action="version", version=_("%(prog)s {}").format(__version__)
    )
    parser.add_argument(
        "--lang",
        metavar="CODE",
        help=_("Override the display language for this command (e.g., es, de, ja)"),
    )
    parser.add_argument(
        "--verbose",
        "-V",
        action="store_true",
        help=_("Enable verbose output for detailed debugging"),
    )
    parser.add_argument(
        "--root",
        metavar="PATH",
        help=_("Store root directory (overrides {} and the config file)").format(ROOT_ENV_VAR),
    )
    subparsers = parser.add_subparsers(dest="command", help=_("Available commands:"))

    install_parser = subparsers.add_parser(
        "install", help=_("Build PACKAGE@VERSION into its own directory and activate it")
    )
    install_parser.add_argument("spec", metavar="PACKAGE@VERSION")
    install_parser.add_argument(
        "--force",
        "--force-reinstall",
        dest="force_reinstall",
        action="store_true",
        help=_("Rebuild and replace the version even if it is already installed"),
    )
    install_parser.add_argument(
        "--no-switch",
        dest="activate",
        action="store_false",
        help=_("Do not make the new version active"),
    )

    uninstall_parser = subparsers.add_parser(
        "uninstall", help=_("Remove an installed version (it must not be active)")
    )
    uninstall_parser.add_argument("spec", metavar="PACKAGE@VERSION")

    switch_parser = subparsers.add_parser(
        "switch", help=_("Make PACKAGE@VERSION active (same as the bare PACKAGE@VERSION form)")
    )
    switch_parser.add_argument("spec", metavar="PACKAGE@VERSION")

    list_parser = subparsers.add_parser("list", help=_("Show installed versions; * marks active"))
    list_parser.add_argument("package", nargs="?", help=_("Only show this package"))
    list_parser.add_argument("--json", action="store_true", help=_("Machine-readable output"))

    which_parser = subparsers.add_parser(
        "which", help=_("Show which package version provides a binary")
    )
    which_parser.add_argument("binary")

    config_parser = subparsers.add_parser("config", help=_("View or edit omniswitch configuration"))
    config_subparsers = config_parser.add_subparsers(dest="config_command", required=True)
    config_subparsers.add_parser("view", help=_("Display the current configuration"))
    config_set_parser = config_subparsers.add_parser("set", help=_("Set a configuration value"))
    config_set_parser.add_argument("key")
    config_set_parser.add_argument("value")
    return parser


def _print_path_hint(core: Omniswitch):
    if not core.bin_dir_on_path():
        safe_print(_("💡 {} is not on your PATH. Add it to use the active binaries:").format(core.bin_dir))
        safe_print(f'   export PATH="{core.bin_dir}:$PATH"')


def _print_switched(core: Omniswitch, spec: str, switched):
    for name in switched:
        safe_print(_("   🔗 {} -> {}").format(core.bin_dir / name, spec))
    safe_print(_("✅ {} is now active.").format(spec))
    _print_path_hint(core)


def cmd_install(core: Omniswitch, args) -> int:
    package, version = parse_spec(args.spec, "install")
    spec = f"{package}@{version}"
    print_header(_("Installing {}").format(spec))
    installed, switched = core.install(
        package, version, force_reinstall=args.force_reinstall, activate=args.activate
    )
    safe_print(
        _("✅ Installed {} ({})").format(installed.spec, ", ".join(sorted(installed.binaries)))
    )
    if args.activate:
        _print_switched(core, installed.spec, switched)
    return 0


def cmd_switch(core: Omniswitch, args) -> int:
    package, version = parse_spec(args.spec, "switch")
    switched = core.switch(package, version)
    _print_switched(core, f"{package}@{version}", switched)
    return 0


def cmd_uninstall(core: Omniswitch, args) -> int:
    package, version = parse_spec(args.spec, "uninstall")
    core.uninstall(package, version)
    safe_print(_("🗑️  Uninstalled {}@{}").format(package, version))
    return 0


def cmd_list(core: Omniswitch, args) -> int:
    report = core.report(args.package)
    if args.json:
        safe_print(
            json.dumps(
                {
                    package: [
                        {
                            "version": str(entry.version),
                            "active": entry.active,
                            "binaries": list(entry.binaries),
                            "active_binaries": list(entry.active_binaries),
                        }
                        for entry in entries
                    ]
                    for package, entries in report.items()
                },
                indent=2,
            )
        )
        return 0
    if not report:
        safe_print(_("No packages installed yet. Try: omniswitch install <package>@<version>"))
        return 0
    for package, entries in report.items():
        safe_print(f"{package}:")
        for entry in entries:
            marker = "*" if entry.active else "-"
            suffix = f"  ({', '.join(entry.active_binaries)})" if entry.active else ""
            safe_print(f"  {marker} {entry.version}{suffix}")
    return 0


def cmd_which(core: Omniswitch, args) -> int:
    owner = core.query(args.binary)
    if owner is None:
        safe_print(_("{} is not managed by omniswitch.").format(args.binary), file=sys.stderr)
        return 1
    package, version = owner
    safe_print(f"{package}@{version}")
    return 0


def cmd_config(cm: ConfigManager, args) -> int:
    if args.config_command == "view":
        print_header(_("omniswitch Configuration"))
        for key, value in sorted(cm.config.items()):
            safe_print(f"  - {key}: {value}")
        safe_print(_("  (config file: {})").format(cm.config_path))
        return 0
    try:
        value = cm.set(args.key, args.value)
    except KeyError:
        safe_print(
            _("❌ Unknown configuration key '{}'. Known keys: {}").format(
                args.key, ", ".join(sorted(cm.config))
            ),
            file=sys.stderr,
        )
        return 1
    except ValueError as e:
        safe_print(_("❌ {}").format(e), file=sys.stderr)
        return 1
    if args.key == "language":
        _.set_language(value)
        if not _.is_supported(value):
            safe_print(
                _("⚠️ '{}' has no translation yet; supported: {}").format(
                    value, ", ".join(_.available_languages())
                )
            )
    safe_print(_("✅ {} set to {}").format(args.key, value))
    return 0


HANDLERS = {
    "install": cmd_install,
    "switch": cmd_switch,
    "uninstall": cmd_uninstall,
    "list": cmd_list,
    "which": cmd_which,
}


def main(argv=None):
    """Main entry point. Returns the process exit status."""
    if argv is None:
        argv = sys.argv[1:]
    try:
        global_parser = argparse.ArgumentParser(add_help=False)
        global_parser.add_argument("--lang", default=None)
        global_parser.add_argument("--verbose", "-V", action="store_true")
        global_parser.add_argument("--root", default=None)
        global_args, remaining_args = global_parser.parse_known_args(argv)

        # The bare `omniswitch name@version` form is a switch.
        if remaining_args and remaining_args[0] not in COMMANDS and looks_like_spec(remaining_args[0]):
            remaining_args.insert(0, "switch")

        logging.basicConfig(
            level=logging.DEBUG if global_args.verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
        )

        cm = ConfigManager()
        user_lang = global_args.lang or cm.get("language")
        if user_lang:
            _.set_language(user_lang)

        parser = create_parser()
        args = parser.parse_args(remaining_args)
        args.verbose = global_args.verbose
        args.root = global_args.root
        if args.command is None:
            parser.print_help()
            return 0
        if args.command == "config":
            return cmd_config(cm, args)

        core = Omniswitch.from_config(cm, root=args.root)
        return HANDLERS[args.command](core, args)
    except OmniswitchError as e:
        safe_print(_("❌ {}").format(e), file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        safe_print(_("\n❌ Operation cancelled by user."), file=sys.stderr)
        return 130
    except Exception as e:
        safe_print(_("\n❌ An unexpected error occurred: {}").format(e), file=sys.stderr)
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
