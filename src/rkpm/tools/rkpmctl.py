"""
Remote key provisioning control utility.

Tool to inspect and reset the persisted provisioning settings, and to check that the
provisioning server answers with well-formed encryption key material. It never generates,
signs or stores any keys.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from rkpm.common.config import RKPMConfig, get_config
from rkpm.common.errors import DecodeError, SettingsError, TransportError
from rkpm.common.integrity import checksum_bytes2str
from rkpm.common.logging import get_logger
from rkpm.common.parse_utils import timedelta_to_duration
from rkpm.common.settings import SettingsStore, get_settings_store
from rkpm.protocol.client import ServerInterface
from rkpm.provisioner.cycle import device_config_from_settings
from rkpm.version import __verbose_version__


def show_settings(
    args: argparse.Namespace,
    config: RKPMConfig,
    settings: SettingsStore,
    logger: logging.Logger,
) -> bool:
    """Show the persisted settings."""
    current = settings.load()
    logger.info(f"Settings from {settings}")
    for key, value in current.to_dict().items():
        print(f"{key}: {value}")
    return True


def reset_settings(
    args: argparse.Namespace,
    config: RKPMConfig,
    settings: SettingsStore,
    logger: logging.Logger,
) -> bool:
    """Reset the persisted settings to defaults."""
    if not args.force:
        ack = input(
            'Reset all provisioning settings? Confirm with "Yes" (exactly) or anything else to abort: '
        )
        if ack.strip("\n") != "Yes":
            logger.warning("Reset of provisioning settings aborted")
            return True
    settings.clear_all()
    return True


def check_server(
    args: argparse.Namespace,
    config: RKPMConfig,
    settings: SettingsStore,
    logger: logging.Logger,
) -> bool:
    """Fetch encryption key material from the provisioning server and report on it."""
    current = settings.load()
    server = ServerInterface(
        base_url=args.url or current.provisioning_url,
        timeout=config.server.request_timeout,
        strict_http_status=config.server.strict_http_status,
    )
    logger.info(f"Checking provisioning server {server}")
    try:
        resp = server.fetch_encryption_key(device_config_from_settings(current))
    except (TransportError, DecodeError) as exc:
        logger.error(str(exc))
        return False
    logger.info(f"Key material: {checksum_bytes2str(resp.key_material)}")
    logger.info(f"Challenge: {len(resp.challenge)} bytes")
    logger.info(f"Extra keys allowed: {resp.extra_keys_allowed}")
    logger.info(f"Refresh interval: {timedelta_to_duration(resp.refresh_interval)}")
    logger.info(f"Provisioning URL: {resp.provisioning_url}")
    return True


def main() -> bool:
    """Main function."""
    progname = os.path.basename(sys.argv[0])

    parser = argparse.ArgumentParser(
        description=f"Remote key provisioning control {__verbose_version__}",
        add_help=True,
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        dest="config",
        metavar="CFGFILE",
        type=str,
        default="rkpm.yaml",
        help="Path to the provisioning configuration file",
    )
    parser.add_argument(
        "--debug",
        dest="debug",
        action="store_true",
        default=False,
        help="Enable debug operation",
    )
    parser.add_argument(
        "--syslog",
        dest="syslog",
        action="store_true",
        default=False,
        help="Also log to syslog",
    )
    parser.add_argument(
        "--logdir",
        dest="logdir",
        metavar="DIR",
        type=Path,
        required=False,
        help="Also write a log file for this run in DIR",
    )

    subparsers = parser.add_subparsers()

    parser_show = subparsers.add_parser("show-settings")
    parser_show.set_defaults(func=show_settings)

    parser_reset = subparsers.add_parser("reset-settings")
    parser_reset.set_defaults(func=reset_settings)
    parser_reset.add_argument(
        "--force",
        dest="force",
        action="store_true",
        default=False,
        help="Don't ask for confirmation",
    )

    parser_check = subparsers.add_parser("check-server")
    parser_check.set_defaults(func=check_server)
    parser_check.add_argument(
        "--url",
        dest="url",
        metavar="URL",
        type=str,
        required=False,
        help="Provisioning server base URL, instead of the one in the settings",
    )

    args = parser.parse_args()
    logger = get_logger(
        progname=progname, debug=args.debug, syslog=args.syslog, logdir=args.logdir
    ).getChild(__name__)

    try:
        config = get_config(args.config)
    except FileNotFoundError as exc:
        logger.critical(str(exc))
        return False
    except ValidationError as exc:
        logger = logging.getLogger("configuration")
        for message in str(exc).splitlines():
            logger.critical(message)
        return False

    try:
        mode_function = args.func
    except AttributeError:
        parser.print_help()
        return False

    settings = get_settings_store(config)
    try:
        res = mode_function(args, config, settings, logger)
        if res is True:
            sys.exit(0)
    except SettingsError as exc:
        logger.critical(str(exc))
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(0)

    sys.exit(1)


if __name__ == "__main__":
    main()
