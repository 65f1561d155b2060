from __future__ import annotations

import argparse
import hashlib
import io
import logging
import mimetypes
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse, unquote

import numpy as np
import requests
from PIL import Image

# Stage registration happens at import time
from generators import REGISTRY, default_pipeline, render_state
from layers import generate_channel
from presets import (
    OUTPUT_HEIGHT,
    OUTPUT_WIDTH,
    ColorParams,
    InputParams,
    describe_preset,
    get_preset,
    list_presets,
    preset_index,
)

try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
except ImportError:
    pass

# =============== Logging ===============
log = logging.getLogger("buffgen")

WEBP_QUALITY = 90
FILENAME_PREFIX = "UI_Gcg_Buff_"


def setup_logging(verbosity: int = 0) -> None:
    level = [logging.WARNING, logging.INFO, logging.DEBUG][min(verbosity, 2)]
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )


# =============== Core: Fetcher & Loader ===============
class FileFetcher:
    """Fetch bytes from http(s) / file:// / local path with a tiny, safe cache."""

    def __init__(self, cache_dir: Optional[Path] = None, timeout: float = 20.0) -> None:
        self.timeout = timeout
        self.cache_dir = cache_dir or Path(tempfile.gettempdir()) / "buffgen_cache"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": "buffgen/0.1 (+https://local)"})

    def fetch(self, src: str) -> Tuple[bytes, Optional[str]]:
        parsed = urlparse(src)
        scheme = (parsed.scheme or "").lower()
        if scheme in ("http", "https"):
            return self._fetch_http_cached(src)
        if scheme == "file":
            return self._fetch_local(unquote(parsed.path))
        if scheme == "":
            return self._fetch_local(src)
        raise ValueError(f"Unsupported URL scheme: {scheme}")

    def _cache_key(self, url: str) -> Path:
        h = hashlib.sha256(url.encode("utf-8")).hexdigest()[:32]
        return self.cache_dir / f"{h}.bin"

    def _fetch_http_cached(self, url: str) -> Tuple[bytes, Optional[str]]:
        key = self._cache_key(url)
        if key.exists():
            try:
                raw = key.read_bytes()
            except OSError as e:
                log.debug("Cache read failed for %s: %s", key.name, e)
            else:
                log.info("Cache hit: %s", key.name)
                return raw, mimetypes.guess_type(url)[0]
        log.info("Fetching: %s", url)
        r = self._session.get(url, timeout=self.timeout)
        r.raise_for_status()
        raw = r.content
        try:
            key.write_bytes(raw)
        except OSError as e:
            log.debug("Cache write failed for %s: %s", key.name, e)
        return raw, r.headers.get("Content-Type")

    def _fetch_local(self, path_str: str) -> Tuple[bytes, Optional[str]]:
        p = Path(path_str)
        if not p.exists() or not p.is_file():
            raise FileNotFoundError(f"Input file not found: {p}")
        raw = p.read_bytes()
        return raw, mimetypes.guess_type(p.name)[0]


class ImageLoader:
    """Decode bytes → RGBA Pillow image (grey, palette and RGB sources included)."""

    def load(self, raw: bytes, content_type: Optional[str] = None, *, max_size: Optional[int] = None) -> Image.Image:
        try:
            img = Image.open(io.BytesIO(raw))
            img.load()
        except Exception as e:
            raise ValueError(f"Failed to decode image: {e}") from e

        log.debug("Decoded %s image %dx%d (%s)", img.mode, img.width, img.height, content_type or "unknown type")
        img = img.convert("RGBA")
        if max_size:
            img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
        return img


# =============== Export ===============
def to_image(pixels: np.ndarray) -> Image.Image:
    return Image.fromarray(np.asarray(pixels, dtype=np.uint8), "RGBA")


def _infer_format_from_path(p: Path) -> str:
    if p.suffix.lower() == ".webp":
        return "WEBP"
    return "PNG"


def _save_kwargs(fmt: str) -> Dict[str, Any]:
    if fmt == "WEBP":
        return {"quality": WEBP_QUALITY}
    return {"optimize": True}


def encode_image(pixels: np.ndarray, fmt: str = "PNG") -> bytes:
    fmt = fmt.upper()
    buf = io.BytesIO()
    to_image(pixels).save(buf, format=fmt, **_save_kwargs(fmt))
    return buf.getvalue()


def save_image(pixels: Any, path: Path, fmt: Optional[str] = None) -> Path:
    img = pixels if isinstance(pixels, Image.Image) else to_image(pixels)
    path = Path(path)
    fmt = (fmt or _infer_format_from_path(path)).upper()
    path.parent.mkdir(parents=True, exist_ok=True)
    img.save(path, format=fmt, **_save_kwargs(fmt))
    return path


def generate_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return FILENAME_PREFIX + now.strftime("%Y-%m-%dT%H-%M-%S")


# =============== Small CLI helpers ===============
def _coerce(v: str) -> Any:
    if v.lstrip("-").isdigit():
        return int(v)
    try:
        return float(v)
    except ValueError:
        low = v.lower()
        if low in ("true", "false"):
            return low == "true"
    return v


def _parse_kv_pairs(pairs: Optional[List[str]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if not pairs:
        return out
    for p in pairs:
        if "=" in p:
            k, v = p.split("=", 1)
            out[k.strip()] = _coerce(v.strip())
        else:
            log.warning("Ignoring malformed pair '%s' (expected key=value)", p)
    return out


# ======= Pipeline helpers =======
def _parse_pipeline(pipeline: Optional[str]) -> Optional[List[str]]:
    if not pipeline:
        return None
    stages = [s.strip().lower() for s in pipeline.split("|") if s.strip()]
    if not stages:
        raise ValueError("Empty --pipeline. Example: background|composite")
    unknown = [s for s in stages if s not in REGISTRY.names()]
    if unknown:
        raise KeyError(f"Unknown stage(s) in pipeline: {', '.join(unknown)}. Available: {', '.join(REGISTRY.names())}")
    return stages


def _split_stage_extras(stages: List[str], raw_extras: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Route --extra pairs to pipeline stages.

    `key=val` and `all.key=val` go to every stage, `ring.key=val` to the stage
    of that name, `1.key=val` to the stage at that position. Later forms win.
    Targets that match no stage in the pipeline are reported and dropped.
    """
    shared: Dict[str, Any] = {}
    targeted: Dict[Any, Dict[str, Any]] = {}

    for k, v in raw_extras.items():
        prefix, _, key = k.rpartition(".")
        prefix = prefix.strip().lower()
        if prefix in ("", "all"):
            shared[key.strip()] = v
            continue
        target: Any = int(prefix) if prefix.isdigit() else prefix
        if (isinstance(target, int) and target >= len(stages)) or (isinstance(target, str) and target not in stages):
            log.warning("Extra '%s' targets no stage in %s; ignored", k, "|".join(stages))
            continue
        targeted.setdefault(target, {})[key.strip()] = v

    return [{**shared, **targeted.get(name, {}), **targeted.get(i, {})} for i, name in enumerate(stages)]


def _build_params(args: argparse.Namespace) -> Tuple[ColorParams, InputParams]:
    preset = get_preset(args.preset)
    color, unknown = preset.color.with_overrides(**_parse_kv_pairs(args.set))
    if unknown:
        log.warning("Unknown color parameter(s) ignored: %s", ", ".join(unknown))

    source = None
    if args.image:
        raw, ctype = FileFetcher().fetch(args.image)
        source = ImageLoader().load(raw, ctype, max_size=args.max_size)
        log.info("Foreground image %dx%d", *source.size)

    inputs = InputParams(
        ring=args.ring,
        fg_image=source,
        fg_x=args.x,
        fg_y=args.y,
        fg_w=args.w,
        fg_h=args.h,
        fg_invert_alpha=args.invert_alpha,
        fg_feather=args.feather,
        a_factor=args.a_factor,
        color_preset_index=preset_index(args.preset),
    )
    return color, inputs


def _render_from_args(args: argparse.Namespace, color: ColorParams, inputs: InputParams):
    stages = _parse_pipeline(getattr(args, "pipeline", None)) or default_pipeline(inputs)
    stage_extras = _split_stage_extras(stages, _parse_kv_pairs(getattr(args, "extra", None)))
    return render_state(args.width, args.height, color, inputs,
                        stages=stages, stage_extras=stage_extras, strict=not args.lenient)


# =============== CLI ===============
def _add_render_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--preset", default="normal", help=f"Color preset name or index ({', '.join(list_presets())}).")
    p.add_argument("--set", nargs="*", help="Color overrides as key=value (e.g. bg_h_value=40 fg_h_offset=-20).")
    p.add_argument("--image", help="Foreground image: local path, file:// URL or http(s) URL.")
    p.add_argument("--ring", action="store_true", help="Draw the octagonal ring overlay.")
    p.add_argument("--x", type=int, default=0, help="Foreground X offset in px (may be negative).")
    p.add_argument("--y", type=int, default=0, help="Foreground Y offset in px (may be negative).")
    p.add_argument("--w", type=float, default=100.0, help="Foreground width scale in percent.")
    p.add_argument("--h", type=float, default=100.0, help="Foreground height scale in percent.")
    p.add_argument("--invert-alpha", action="store_true", help="Invert the foreground opacity map.")
    p.add_argument("--feather", action="store_true", help="Feather (blur) the placed opacity map.")
    p.add_argument("--a-factor", type=float, default=0.5, help="Opacity remap exponent, 0..3.")
    p.add_argument("--width", type=int, default=OUTPUT_WIDTH, help="Output width in px.")
    p.add_argument("--height", type=int, default=OUTPUT_HEIGHT, help="Output height in px.")
    p.add_argument("--max-size", type=int, default=None, help="Downscale the foreground image's longest side on load.")
    p.add_argument("--lenient", action="store_true", help="Fix up invalid filter sizes instead of failing.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Procedural buff/debuff icon generator")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v, -vv).")

    sub = p.add_subparsers(dest="cmd", required=True)

    lp = sub.add_parser("list", help="List render stages.")
    lp.set_defaults(func=cmd_list)

    pp = sub.add_parser("presets", help="List color presets.")
    pp.set_defaults(func=cmd_presets)

    rp = sub.add_parser("run", help="Render an icon.")
    _add_render_args(rp)
    rp.add_argument("--out", type=Path, default=None, help="Output file (png/webp). Default: timestamped name.")
    rp.add_argument("--format", choices=["png", "webp"], default=None, help="Force output format.")
    rp.add_argument("--scale", type=int, default=1, help="Final upscale factor via Lanczos (1=off).")
    rp.add_argument("--pipeline", help="Stages as 's1|s2|...' (default: full render).")
    rp.add_argument("--extra", nargs="*", help="Per-stage k=v pairs, e.g. ring.blur_radius=4 or 0.ring=true.")
    rp.set_defaults(func=cmd_run)

    cp = sub.add_parser("channels", help="Dump every layer channel as a grayscale PNG.")
    _add_render_args(cp)
    cp.add_argument("--out-dir", type=Path, required=True, help="Directory for the channel PNGs.")
    cp.set_defaults(func=cmd_channels)

    bp = sub.add_parser("bench", help="Micro-benchmark a render.")
    _add_render_args(bp)
    bp.add_argument("--runs", type=int, default=10)
    bp.set_defaults(func=cmd_bench)

    return p


# =============== Commands ===============
def cmd_list(_args: argparse.Namespace) -> int:
    print("Available stages:", ", ".join(REGISTRY.names()) or "(none)")
    return 0


def cmd_presets(_args: argparse.Namespace) -> int:
    for i, name in enumerate(list_presets()):
        print(f"{i}: {describe_preset(name)}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    try:
        color, inputs = _build_params(args)
        state = _render_from_args(args, color, inputs)
        if state.pixels is None:
            raise ValueError("Pipeline produced no pixels; end it with 'composite'")

        out_img = to_image(state.pixels)
        if args.scale and args.scale > 1:
            w, h = out_img.size
            out_img = out_img.resize((w * args.scale, h * args.scale), Image.Resampling.LANCZOS)

        fmt = args.format.upper() if args.format else None
        out = args.out or Path(f"{generate_filename()}.{(args.format or 'png').lower()}")
        save_image(out_img, out, fmt)
        log.info("Saved %s (%dx%d)", out, *out_img.size)
        return 0

    except Exception as e:
        log.exception("Failed: %s", e)
        return 1


def cmd_channels(args: argparse.Namespace) -> int:
    try:
        color, inputs = _build_params(args)
        state = render_state(args.width, args.height, color, inputs, strict=not args.lenient)

        dumps: Dict[str, np.ndarray] = {}
        dumps.update(state.background.channels("bg"))
        dumps.update(state.foreground.channels("fg"))
        if state.ring_mask is not None:
            dumps["ring_mask"] = state.ring_mask
        for mode in ("radial", "vertical", "diagonal"):
            dumps[f"grad_{mode}"] = generate_channel(args.width, args.height, mode)

        args.out_dir.mkdir(parents=True, exist_ok=True)
        for name, channel in dumps.items():
            Image.fromarray(channel, "L").save(args.out_dir / f"{name}.png", format="PNG", optimize=True)
        save_image(state.pixels, args.out_dir / "final.png")
        log.info("Wrote %d channel images to %s", len(dumps) + 1, args.out_dir)
        return 0
    except Exception as e:
        log.exception("Failed: %s", e)
        return 1


def cmd_bench(args: argparse.Namespace) -> int:
    try:
        color, inputs = _build_params(args)
        stages = default_pipeline(inputs)
        times = []
        for _ in range(max(1, args.runs)):
            t0 = time.perf_counter()
            render_state(args.width, args.height, color, inputs, strict=not args.lenient)
            times.append(time.perf_counter() - t0)
        avg = sum(times) / len(times)
        print(
            f"{'|'.join(stages)} @ {args.width}x{args.height}: {len(times)} run(s), avg {avg*1000:.2f} ms, "
            f"min {min(times)*1000:.2f} ms, max {max(times)*1000:.2f} ms"
        )
        return 0
    except Exception as e:
        log.exception("Bench failed: %s", e)
        return 1


# =============== Entry ===============
def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
