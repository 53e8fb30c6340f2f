import argparse
import sys
from pathlib import Path

from rpi_first_boot.config.settings import CONFIG_PATH
from rpi_first_boot.logging import RUN_LOG_NAME, LoggerFactory, setup_logging
from rpi_first_boot.services.provisioning import ProvisioningOptions, run_provisioning
from rpi_first_boot.services.user_profile import DEFAULT_HOME
from rpi_first_boot.storage.layout import DEFAULT_DEVICE
from rpi_first_boot.storage.mount import FSTAB_PATH


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rpi-first-boot",
        description="Unattended first-boot provisioning of a Raspberry Pi SD card",
    )
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help="Parameter file")
    parser.add_argument("--device", default=DEFAULT_DEVICE, help="Boot device (e.g. mmcblk0)")
    parser.add_argument(
        "--boot-dir", type=Path, default=Path("/boot"), help="Mounted boot partition"
    )
    parser.add_argument("--fstab", type=Path, default=FSTAB_PATH, help="fstab to extend")
    parser.add_argument("--home", type=Path, default=DEFAULT_HOME, help="Operating user's home")
    parser.add_argument("--log-dir", type=Path, default=None, help="Directory for rotating logs")
    parser.add_argument(
        "--skip-disk", action="store_true", help="Do not touch the partition table"
    )
    parser.add_argument(
        "--skip-system", action="store_true", help="Skip profile and OS configuration"
    )
    parser.add_argument(
        "--remove-config",
        action="store_true",
        help="Delete the parameter file after the run (it may hold the WiFi password)",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Also log raw command output")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    setup_logging(
        debug=args.debug,
        trace=args.trace,
        log_dir=args.log_dir,
        run_log=args.boot_dir / RUN_LOG_NAME,
    )
    log = LoggerFactory.for_system()
    log.info(f"Unattended configuration by {Path(sys.argv[0]).name}")

    options = ProvisioningOptions(
        device=args.device,
        config_path=args.config,
        boot_dir=args.boot_dir,
        fstab_path=args.fstab,
        home=args.home,
        skip_disk=args.skip_disk,
        skip_system=args.skip_system,
        remove_config=args.remove_config,
    )
    report = run_provisioning(options)
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
