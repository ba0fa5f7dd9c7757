import argparse
import asyncio
import logging
import sys
import traceback
from logging.handlers import RotatingFileHandler
from typing import List, Optional, Tuple

from .config import (
    LoggingSettings,
    Settings,
    generate_env_template,
    get_settings,
    print_settings_summary,
    validate_settings,
)
from .exceptions import ConfigurationError, SolanaSenderError
from .gateway import SolanaGateway
from .jupiter import JupiterClient
from .models import ExpiryWindow, Outcome, SignedTransaction, Unknown
from .reporter import EXIT_FAILURE, OutcomeReporter
from .supervisor import BroadcastSupervisor
from .transaction import (
    build_self_transfer,
    decode_swap_transaction,
    load_keypair,
    prepare,
    sign_versioned,
)

logger = logging.getLogger("solana_tx_sender")


def setup_logging(settings: LoggingSettings) -> logging.Logger:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.level.value))
    root_logger.handlers.clear()

    console_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt=settings.date_format,
    )
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if settings.file_enabled:
        settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.file_path,
            maxBytes=settings.file_max_bytes,
            backupCount=settings.file_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(
            logging.Formatter(settings.format, datefmt=settings.date_format)
        )
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return logger


def _private_key(settings: Settings) -> str:
    if settings.wallet.private_key is None:
        raise ConfigurationError("WALLET_PRIVATE_KEY is not set")
    return settings.wallet.private_key.get_secret_value()


async def prepare_self_transfer(
    settings: Settings,
    gateway: SolanaGateway,
) -> Tuple[SignedTransaction, ExpiryWindow]:
    keypair = load_keypair(_private_key(settings))
    window = await gateway.get_expiry_window()
    tx = build_self_transfer(keypair, window.blockhash, settings.transfer)
    return prepare(tx, window.last_valid_block_height)


async def prepare_jupiter_swap(
    settings: Settings,
    gateway: SolanaGateway,
) -> Tuple[SignedTransaction, ExpiryWindow]:
    keypair = load_keypair(_private_key(settings))

    async with JupiterClient(settings.jupiter) as jupiter:
        quote = await jupiter.get_quote()
        swap = await jupiter.get_swap_transaction(quote, str(keypair.pubkey()))

    tx = sign_versioned(decode_swap_transaction(swap.swap_transaction), keypair)
    return prepare(tx, swap.last_valid_block_height)


async def send_transaction(settings: Settings, command: str) -> Outcome:
    """Prepare the transaction for `command` and drive it to an Outcome."""
    preparers = {
        "transfer": prepare_self_transfer,
        "swap": prepare_jupiter_swap,
    }

    async with SolanaGateway.from_settings(settings.solana, settings.broadcast) as gateway:
        signed, expiry = await preparers[command](settings, gateway)
        supervisor = BroadcastSupervisor(gateway, settings.broadcast)
        try:
            return await supervisor.run(signed, expiry)
        except (asyncio.CancelledError, KeyboardInterrupt):
            if not supervisor.submitted:
                raise
            # The watch is already torn down; the transaction may still land.
            logger.warning(f"Aborted while waiting for {signed.signature}")
            return Unknown(signed.signature, reason="aborted", attempts=supervisor.attempt_count)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solana-tx-sender",
        description="Send a transaction and resend it until it is confirmed or expires",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("transfer", help="Send a self SOL transfer")
    subparsers.add_parser("swap", help="Send a Jupiter swap")

    config_parser = subparsers.add_parser("config", help="Configuration utilities")
    config_parser.add_argument("--show", action="store_true", help="Show current settings")
    config_parser.add_argument("--validate", action="store_true", help="Validate settings")
    config_parser.add_argument(
        "--generate-env", action="store_true", help="Generate .env template"
    )
    config_parser.add_argument(
        "--unmask", action="store_true", help="Show unmasked secrets (dangerous)"
    )
    return parser


def run_config_command(args: argparse.Namespace) -> int:
    if args.generate_env:
        print(generate_env_template())
    elif args.validate:
        is_valid, errors = validate_settings()
        if is_valid:
            print("[PASS] Settings validation passed")
        else:
            print("[FAIL] Settings validation failed:")
            for error in errors:
                print(f"  - {error}")
            return EXIT_FAILURE
    else:
        print_settings_summary(mask_secrets=not args.unmask)
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "config":
        return run_config_command(args)

    try:
        settings = get_settings()
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    log = setup_logging(settings.logging)
    log.info(f"{settings.app_name} v{settings.app_version}")
    log.info(f"Network: {settings.solana.network.value}")
    log.info(f"RPC URL: {settings.solana.endpoint[:50]}")

    reporter = OutcomeReporter.from_settings(settings.solana)

    try:
        outcome = await send_transaction(settings, args.command)
    except SolanaSenderError as e:
        log.error(f"Error: {e}")
        log.error("Transaction failed")
        return EXIT_FAILURE
    except Exception as e:
        log.error(f"Error: {e}")
        log.debug(traceback.format_exc())
        log.error("Transaction failed")
        return EXIT_FAILURE

    return reporter.report(outcome)


def run(argv: Optional[List[str]] = None) -> None:
    try:
        if sys.platform == "win32":
            asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

        exit_code = asyncio.run(main(argv))
        sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)
    except Exception as e:
        print(f"Fatal error: {e}")
        traceback.print_exc()
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    run()
