import argparse
import logging
import random
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from langchain_openai import ChatOpenAI

from synthesizer.assets import find_images, image_to_bytes, load_source_image
from synthesizer.config import Settings
from synthesizer.core import BatchOrchestrator, VariantSynthesizer
from synthesizer.errors import PurgeError, SynthesizerError
from synthesizer.export import export_batch, write_listings_csv, write_metadata
from synthesizer.generator import BACKGROUND_PRESETS, BackgroundGenerator
from synthesizer.models import GenerationOptions
from synthesizer.modes import mode_from_flag
from synthesizer.pacing import ThrottlePolicy
from synthesizer.session import VariantSession
from synthesizer.store import JsonVariantStore
from synthesizer.tagging import ImageTagger
from synthesizer.validation import MarketValidator, best_variant, shipping_clusters


logger = logging.getLogger("synthesizer")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate, validate and export variants of a product photo."
    )
    parser.add_argument(
        "--store-dir",
        type=Path,
        default=None,
        help="Variant store directory (defaults to VARIANT_STORE_DIR or .variant_store).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Synthesize a batch of variants.")
    gen.add_argument("--source", type=Path, required=True, help="Product photo, or a folder of photos.")
    gen.add_argument("--label", help="Product title drawn as the overlay (defaults to the first tag).")
    gen.add_argument("--count", type=int, default=10, help="Variants per source image.")
    gen.add_argument("--batch-number", default=None, help="Batch code recorded on each variant.")
    gen.add_argument("--no-date", action="store_true", help="Record show_date=False.")
    gen.add_argument("--texture", type=float, default=0.08, help="Noise intensity (0 disables).")
    gen.add_argument("--opacity", type=float, default=0.04, help="Overlay opacity in [0, 1].")
    gen.add_argument("--format", choices=["jpeg", "png"], default="jpeg")
    gen.add_argument("--upscale", type=float, default=1, help="Upscale factor (>= 1).")
    gen.add_argument("--standard", action="store_true", help="Disable cloaking.")
    gen.add_argument("--tag", action="append", default=None, help="Tag to attach (repeatable). Skips AI tagging.")
    gen.add_argument(
        "--background",
        default=None,
        help=f"Replace the background first. Preset ({', '.join(BACKGROUND_PRESETS)}) or free text.",
    )

    exp = sub.add_parser("export", help="Bulk export stored variants.")
    exp.add_argument("--out", type=Path, default=Path("exports"))
    exp.add_argument("--csv", action="store_true", help="Also write the listings CSV.")
    exp.add_argument("--metadata", action="store_true", help="Write metadata JSON for the best variant.")
    exp.add_argument("--purge", action="store_true", help="Destroy history after the export.")
    exp.add_argument("--yes", action="store_true", help="Confirm the purge without prompting.")

    sub.add_parser("validate", help="Run the simulated marketplace validation.")
    sub.add_parser("insights", help="Print the shipping-cluster report.")

    purge = sub.add_parser("purge", help="Irreversibly delete all stored variants.")
    purge.add_argument("--yes", action="store_true", help="Do not prompt for confirmation.")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    # Load environment variables from a local .env file if present
    # (e.g. OPENAI_API_KEY=sk-..., REPLICATE_API_TOKEN=r8_...).
    load_dotenv()
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    args = parse_args(argv)
    store = JsonVariantStore(args.store_dir or settings.store_dir)
    session = VariantSession(store)
    session.load_history()

    try:
        if args.command == "generate":
            return _generate(args, settings, session)
        if args.command == "export":
            return _export(args, settings, session)
        if args.command == "validate":
            return _validate(settings, session)
        if args.command == "insights":
            return _insights(session)
        if args.command == "purge":
            if args.yes or _confirm("Reset current workspace? This cannot be undone."):
                session.purge()
                print("🧹 Store cleared.")
            return 0
    except PurgeError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"❌ Invalid option: {e}", file=sys.stderr)
        return 1
    except SynthesizerError:
        logger.exception("Operation failed")
        print("❌ Generation failed. See the log for details.", file=sys.stderr)
        return 1
    return 0


def _generate(args: argparse.Namespace, settings: Settings, session: VariantSession) -> int:
    sources = find_images(args.source) if args.source.is_dir() else [args.source]
    if not sources:
        print(f"No images found under {args.source}", file=sys.stderr)
        return 1

    # If OPENAI_API_KEY is defined we tag with a real vision model; otherwise
    # the tagger returns its fixed fallback tags.
    llm = None
    if settings.openai_api_key:
        llm = ChatOpenAI(
            model=settings.vision_model,
            temperature=0.2,
            api_key=settings.openai_api_key,
        )
    tagger = ImageTagger(llm=llm)
    cloaking = not args.standard

    orchestrator = BatchOrchestrator(
        VariantSynthesizer(store=session.store),
        throttle=ThrottlePolicy(delay=settings.generation_delay),
    )
    background = BackgroundGenerator(
        api_token=settings.replicate_api_token,
        model=settings.background_model,
    )

    for source_path in sources:
        print(f"📁 Loading source image: {source_path.name}")
        image = load_source_image(source_path)

        if args.background:
            replaced = background.regenerate_background(
                image_to_bytes(image), args.background, cloaking=cloaking
            )
            if replaced:
                image = load_source_image(replaced)
            else:
                print("⚠️  Background generation failed; using the original photo.")

        tags = args.tag or tagger.analyze_image(image_to_bytes(image))
        label = args.label or (tags[0] if tags else source_path.stem)

        options = GenerationOptions(
            batch_number=args.batch_number or f"B-{random.randint(1000, 9999)}",
            show_date=not args.no_date,
            texture_intensity=args.texture,
            opacity=args.opacity,
            export_format=args.format,
            upscale_factor=args.upscale,
            tags=tags,
            mode=mode_from_flag(cloaking),
        )
        batch = orchestrator.generate_batch(
            image,
            label,
            args.count,
            options,
            progress=lambda p: print(f"🎨 Generating... {round(p * 100)}%", end="\r"),
        )
        print()
        session.add_batch(batch)
        print(f"✅ {len(batch)} variant(s) of '{label}' ready (batch {options.batch_number}).")

    if not session.persistent:
        print("⚠️  Persistence unavailable; results were kept in memory only.")
    return 0


def _export(args: argparse.Namespace, settings: Settings, session: VariantSession) -> int:
    if not session.variants:
        print("Nothing to export.")
        return 0

    batch = list(session.variants)
    if args.csv:
        write_listings_csv(batch, args.out / "listings.csv")
    if args.metadata:
        best = best_variant(batch)
        if best is None:
            print("No validated variants; skipping metadata export.")
        else:
            write_metadata(best, args.out)

    written = export_batch(
        session,
        args.out,
        variants=batch,
        clear_after=args.purge,
        confirm=lambda: args.yes or _confirm("Destroy history after download?"),
        policy=ThrottlePolicy(delay=settings.export_delay),
        progress=lambda p: print(f"📦 Exporting... {round(p * 100)}%", end="\r"),
    )
    print()
    print(f"✅ Exported {len(written)} file(s) to {args.out}")
    return 0


def _validate(settings: Settings, session: VariantSession) -> int:
    if not session.variants:
        print("Nothing to validate.")
        return 0
    validator = MarketValidator(throttle=ThrottlePolicy(delay=settings.validation_delay))
    summary = validator.validate(session.variants)
    session.merge(session.variants)
    print(f"Validated {summary.total}: {summary.success} passed, {summary.failed} failed.")
    for failure in summary.errors:
        print(f"  [!] {failure.variant_id}: {failure.error}")
    return 0


def _insights(session: VariantSession) -> int:
    clusters = shipping_clusters(session.variants)
    if not clusters:
        print("No validated variants yet. Run `validate` first.")
        return 0
    for cluster in clusters:
        print(
            f"{cluster.cluster_id:>10}  {cluster.variant_count:>4} variant(s)  best: {cluster.best_variant_id}"
        )
    best = best_variant(session.variants)
    if best is not None:
        print(f"Best variant: {best.id} (shipping {best.detected_shipping})")
    return 0


def _confirm(question: str) -> bool:
    try:
        return input(f"{question} [y/N] ").strip().lower() in ("y", "yes")
    except EOFError:
        return False


if __name__ == "__main__":
    sys.exit(main())
