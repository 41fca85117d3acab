import argparse
import os
import sys

from dotenv import load_dotenv

from . import __version__
from .config import CAConfig
from .constants import KEY_FILE_SUFFIX, CERT_FILE_SUFFIX, CHAIN_FILE_SUFFIX
from .errors import SimpleCAError
from .certificate.certificate_authority import CertificateAuthorityEngine
from .certificate.key_factory import KeyFactory
from .storage.key_material_store import slot_for_subject
from .structures.chain_status import ChainStatus
from .structures.subject_name import SubjectName
from .logs.logging_manager import LoggingManager
from .logs.loggers import core_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simple-ca",
        description="Create certificates for dev environment easily.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    ca = sub.add_parser("ca", help="Create the root and intermediate CA certificates")
    ca.add_argument("-v", "--verbose", action="store_true", help="Sets verbose mode")

    server = sub.add_parser("server", help="Create server certificate")
    server.add_argument("common_name", metavar="COMMON_NAME", help="Common name field of the certificate")
    server.add_argument("sans", metavar="SUBJECT_ALT_NAME", nargs="+",
                        help="DNS entry in the SubjectAltName extension of the certificate")
    server.add_argument("--country", help="Country field of the certificate")
    server.add_argument("--state", help="State or province field of the certificate")
    server.add_argument("--locality", help="Locality field of the certificate")
    server.add_argument("--org", help="Organization field of the certificate")
    server.add_argument("--org-unit", help="Organization unit field of the certificate")
    server.add_argument("--id", dest="identifier", help="Store identifier (defaults to the reversed common name)")
    server.add_argument("--out", help="Directory to also write key, certificate and full chain to")
    server.add_argument("-v", "--verbose", action="store_true", help="Sets verbose mode")

    status = sub.add_parser("status", help="Show the state of the CA store")
    status.add_argument("-v", "--verbose", action="store_true", help="Sets verbose mode")

    return parser


def _leaf_name(config: CAConfig, args: argparse.Namespace) -> SubjectName:
    base = config.base_name()
    return SubjectName(
        country=args.country if args.country is not None else base.country,
        state_or_province=args.state if args.state is not None else base.state_or_province,
        locality=args.locality if args.locality is not None else base.locality,
        organization=args.org if args.org is not None else base.organization,
        organization_unit=args.org_unit if args.org_unit is not None else base.organization_unit,
    )


def _write_output(path: str, data: bytes, mode: int):
    # a fresh file gets the mode at creation; an existing one would keep its old mode while written
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    os.chmod(path, mode)
    core_logger.info(f"Saved {path}")


def run_ca(engine: CertificateAuthorityEngine) -> int:
    if engine.chain_status() is ChainStatus.ROOT_ONLY:
        engine.resume_bootstrap()
    else:
        engine.bootstrap()
    core_logger.info(f"CA certificates saved in {engine.config.store_dir}")
    return 0


def run_server(engine: CertificateAuthorityEngine, args: argparse.Namespace) -> int:
    certificate, private_key = engine.issue_leaf(
        args.common_name, args.sans, identifier=args.identifier, name=_leaf_name(engine.config, args)
    )

    if args.out:
        os.makedirs(args.out, exist_ok=True)
        slot = args.identifier or slot_for_subject(args.common_name)
        base = os.path.join(args.out, slot)
        pem_cert = KeyFactory.cert_to_pem(certificate)

        _write_output(base + KEY_FILE_SUFFIX, KeyFactory.priv_key_to_pem(private_key), 0o600)
        _write_output(base + CERT_FILE_SUFFIX, pem_cert, 0o644)
        _write_output(base + CHAIN_FILE_SUFFIX, pem_cert + engine.ca_chain_pem(), 0o644)
    return 0


def run_status(engine: CertificateAuthorityEngine) -> int:
    status = engine.chain_status()
    print(f"store: {engine.config.store_dir}")
    print(f"chain: {status.name}")
    for slot in engine.leaf_slots():
        print(f"server: {slot}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv(".env")
    try:
        config = CAConfig.from_env()
    except ValueError as e:
        print(f"CRITICAL ERROR: invalid configuration: {e}", file=sys.stderr)
        return 1

    LoggingManager.setup_logging(verbose=args.verbose, log_file=config.log_file)
    engine = CertificateAuthorityEngine.from_config(config)

    try:
        match args.command:
            case "ca":
                return run_ca(engine)
            case "server":
                return run_server(engine, args)
            case _:
                return run_status(engine)
    except SimpleCAError as e:
        core_logger.error(f"{type(e).__name__}: {e}")
        return e.exit_code
    except OSError as e:
        core_logger.error(f"File system error: {e}", exc_info=True)
        return 2


if __name__ == "__main__":
    sys.exit(main())
