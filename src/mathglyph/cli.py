"""
Command-line interface for recognising and solving maths.

Examples::

    mathglyph solve "2x + 3 = 11"
    mathglyph scan photo.png --ocr-text "What is 12 + 30?"
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

import cv2

from .constants import load_config
from .errors import DecodeError, PipelineTimeout
from .pipeline import MathPipeline
from .preprocess import Binarizer, ImageNormalizer
from .segmentation import ComponentSegmenter
from .solver import SolveResult, solve


def print_solution(result: SolveResult) -> int:
    if not result.handled:
        print("Not handled: no arithmetic, equation, or word problem recognised")
        return 1
    print(result.answer)
    if result.steps:
        print("Steps:")
        for step in result.steps:
            print(f"  {step}")
    return 0


def cmd_solve(args: argparse.Namespace) -> int:
    text = " ".join(args.text)
    config = load_config(args.config)
    return print_solution(solve(text, config.variable))


def cmd_scan(args: argparse.Namespace) -> int:
    if not os.path.exists(args.image):
        print(f"Error: Image file {args.image} not found")
        return 2
    config = load_config(args.config)

    ocr = None
    if args.tesseract:
        from .ocr import TesseractOCR

        ocr = TesseractOCR(config)

    detector = None
    if args.model:
        if not args.labels:
            print("Error: --model requires --labels")
            return 2
        from .detectors import load_keras_detector

        detector = load_keras_detector(args.model, args.labels, config)

    pipeline = MathPipeline(config, detector=detector, ocr=ocr)
    try:
        result = pipeline.process(args.image, ocr_lines=args.ocr_text)
    except DecodeError as exc:
        print(f"Error: {exc}")
        return 2
    except PipelineTimeout as exc:
        print(f"Error: {exc}")
        return 3

    print(f"Processing image: {args.image}")
    print(f"Threshold: {result.threshold}")
    print(f"Glyphs: {len(result.glyphs)}")
    for i, glyph in enumerate(result.glyphs):
        x, y, w, h = glyph.bbox
        print(f"  Glyph {i + 1}: {glyph.label} (score: {glyph.score:.2f}) at ({x}, {y}, {w}, {h})")
    if result.ocr_confidence is not None:
        print(f"OCR confidence: {result.ocr_confidence:.1f}")
    print(f"Stream: {result.text}")

    if args.visualise:
        mask = result.mask
        if mask is None:
            mask = Binarizer(config).binarise(ImageNormalizer(config).load(args.image))
        overlay = ComponentSegmenter(config.min_component_area).visualise(
            mask, [glyph.bbox for glyph in result.glyphs]
        )
        cv2.imwrite(args.visualise, overlay)
        print(f"Saved visualisation to {args.visualise}")

    return print_solution(result.solution)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mathglyph", description="Recognise and solve handwritten maths")
    sub = parser.add_subparsers(dest="command")

    p_solve = sub.add_parser("solve", help="Solve an expression, equation, or word problem")
    p_solve.add_argument("text", nargs="+", help="Text to solve")
    p_solve.add_argument("--config", type=str, default=None, help="JSON file overriding pipeline settings")
    p_solve.set_defaults(func=cmd_solve)

    p_scan = sub.add_parser("scan", help="Detect glyphs in an image and solve the result")
    p_scan.add_argument("image", help="Path to the image")
    p_scan.add_argument("--ocr-text", type=str, default=None, help="OCR transcript of the same image")
    p_scan.add_argument("--tesseract", action="store_true", help="Transcribe the image with Tesseract")
    p_scan.add_argument("--model", type=str, default=None, help="Saved Keras symbol model")
    p_scan.add_argument("--labels", type=str, default=None, help="Label mapping JSON for --model")
    p_scan.add_argument("--visualise", type=str, default=None, help="Write component boxes to this image")
    p_scan.add_argument("--config", type=str, default=None, help="JSON file overriding pipeline settings")
    p_scan.set_defaults(func=cmd_scan)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 2
    try:
        return args.func(args)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
