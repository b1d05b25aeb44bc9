"""QR-Logo CLI: encode QR images (optionally with a centre logo), decode them and stress-test them."""

import argparse
import sys
from pathlib import Path

from qrlogo.errors import DecodeError, EncodingError
from qrlogo.logging import audit, get_logger, setup_logging

log = get_logger("cli")

EXIT_OK = 0
EXIT_DECODE_FAILED = 1
EXIT_ENCODE_FAILED = 2


def _config(args, image_format=None):
    from qrlogo.pipeline import DEFAULT_CONFIG

    return DEFAULT_CONFIG.with_overrides(
        ecc=getattr(args, "ecc", None),
        margin=getattr(args, "margin", None),
        size=getattr(args, "size", None),
        image_format=image_format or getattr(args, "format", None),
    )


def cmd_encode(args) -> int:
    """Encode text to an image file, optionally with a centre logo."""
    from qrlogo.container import format_for_path
    from qrlogo.pipeline import encode_to_file, encode_with_logo

    output = Path(args.output)
    implied = format_for_path(output, default=None)
    if args.format and implied and implied != args.format:
        print(f"Encode failed: --format {args.format} does not match output suffix {output.suffix!r}",
              file=sys.stderr)
        return EXIT_ENCODE_FAILED
    output.parent.mkdir(parents=True, exist_ok=True)
    config = _config(args, image_format=implied)

    try:
        if args.logo:
            path = encode_with_logo(args.text, output, args.logo, config=config)
        else:
            path = encode_to_file(args.text, output, config=config)
    except EncodingError as e:
        print(f"Encode failed: {e}", file=sys.stderr)
        return EXIT_ENCODE_FAILED

    print(f"Generated: {path} ({config.render.width_px}x{config.render.height_px}, "
          f"ECC {'H' if args.logo else config.ecc.name}, margin {config.margin})")
    return EXIT_OK


def cmd_decode(args) -> int:
    """Decode a QR image and print its text."""
    from qrlogo.pipeline import decode_file

    try:
        text = decode_file(args.image)
    except DecodeError as e:
        kind = "symbol present but unreadable" if e.symbol_present else "no symbol found"
        print(f"FAIL [{type(e).__name__}] {kind}: {e.detail}", file=sys.stderr)
        return EXIT_DECODE_FAILED

    if args.expected is not None and text != args.expected:
        print(f"FAIL mismatch: got {text!r}, expected {args.expected!r}", file=sys.stderr)
        return EXIT_DECODE_FAILED
    print(text)
    return EXIT_OK


def cmd_stress(args) -> int:
    """Run the degradation battery on a QR image."""
    from qrlogo.container import read_file
    from qrlogo.tolerance import stress_test

    result = stress_test(read_file(args.image), expected_data=args.expected)
    print(result.summary())
    return EXIT_OK if result.pass_rate >= args.min_pass_rate else EXIT_DECODE_FAILED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qrlogo", description="QR-Logo: QR codes with centre logos")

    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")
    parser.add_argument("--json-logs", action="store_true", help="JSON log lines on the console")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- encode ---
    p_enc = subparsers.add_parser("encode", help="Encode text into a QR image")
    p_enc.add_argument("text", help="Text to encode")
    p_enc.add_argument("-o", "--output", default="output/qr.jpg", help="Output file path")
    p_enc.add_argument("--logo", default=None, help="Logo image to place in the centre (forces ECC H)")
    p_enc.add_argument("-e", "--ecc", default=None, choices=["L", "M", "Q", "H"], help="Error correction level")
    p_enc.add_argument("--margin", type=int, default=None, help="Quiet zone modules")
    p_enc.add_argument("--size", type=int, default=None, help="Output width/height in pixels")
    p_enc.add_argument("--format", default=None, choices=["JPEG", "PNG"],
                       help="Container format (default: from the output suffix, else JPEG)")

    # --- decode ---
    p_dec = subparsers.add_parser("decode", help="Decode a QR image")
    p_dec.add_argument("image", help="Path to QR image")
    p_dec.add_argument("--expected", default=None, help="Expected text (fails if mismatch)")

    # --- stress ---
    p_stress = subparsers.add_parser("stress", help="Run the degradation battery on a QR image")
    p_stress.add_argument("image", help="Path to QR image")
    p_stress.add_argument("--expected", default=None, help="Expected text")
    p_stress.add_argument("--min-pass-rate", type=float, default=0.8, help="Pass threshold (0-1)")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level="DEBUG" if args.verbose else "INFO",
                  log_file=args.log_file, json_format=args.json_logs)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        return EXIT_DECODE_FAILED

    commands = {
        "encode": cmd_encode,
        "decode": cmd_decode,
        "stress": cmd_stress,
    }
    code = commands[args.command](args)
    audit("cli.done", logger=log, command=args.command, exit_code=code)
    return code


if __name__ == "__main__":
    sys.exit(main())
