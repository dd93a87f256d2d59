#!/usr/bin/env python3
from __future__ import annotations
import argparse, json, logging, os
from datetime import datetime
import cv2
import numpy as np

from docscan.core.config import load_cfg, merge_cfg
from docscan.core.logs import configure_logging
from docscan.enhance.filters import Adjustments, FILTERS, DEFAULT_FILTER, process_scan
from docscan.geometry.candidates import iter_binaries
from docscan.geometry.detect import detect_document, prepare_working
from docscan.geometry.rectify import warp_document
from docscan.io.ingest import load_image
from docscan.io.overlay import draw_quad, iou_quads

log = logging.getLogger("docscan.tools.visualize_detect")


def load_quad(path):
    # expects JSON: [[x,y],[x,y],[x,y],[x,y]] in TL,TR,BR,BL order
    with open(path, "r") as f:
        arr = np.array(json.load(f), dtype=np.float32)
    return arr.reshape(4, 2)


def dump_binaries(img, cfg, out_dir, base):
    """Write every binary map the candidate generator looks at, one PNG per strategy."""
    gray, blurred, _ = prepare_working(img, cfg["working_max_dim"], cfg["blur_ksize"])
    cv2.imwrite(os.path.join(out_dir, f"{base}_DEBUG_gray.png"), gray)
    for i, (tag, binary) in enumerate(iter_binaries(gray, blurred, cfg)):
        path = os.path.join(out_dir, f"{base}_DEBUG_{i:02d}.png")
        cv2.imwrite(path, binary)
        log.debug("[dbg] %s -> %s", tag, path)
    log.info("[dbg] saved binary maps to %s", out_dir)


def main():
    ap = argparse.ArgumentParser(description="Run docscan detection on an image, visualize, rectify and filter.")
    ap.add_argument("image", help="Path to input image (EXIF orientation is applied).")
    ap.add_argument("--config", help="YAML config to merge over the defaults.")
    ap.add_argument("--out_dir", default="output", help="Directory for outputs.")
    ap.add_argument("--out", default=None, help="Output viz PNG path. Default: <out_dir>/<image_basename>_viz.png")
    ap.add_argument("--rect", default=None, help="Rectified PNG path. Default: <out_dir>/<image_basename>_rect.png")
    ap.add_argument("--filter", choices=FILTERS, default=DEFAULT_FILTER, help="Scan filter for the _scan.jpg output.")
    ap.add_argument("--gt", help="Path to ground-truth quad JSON [[x,y],...]. Optional.")
    ap.add_argument("--mode", choices=["collect_all", "fail_fast"], default=None)
    ap.add_argument("--max_dim", type=int, default=None, help="Working resolution (long edge).")
    ap.add_argument("--min_area_ratio", type=float, default=None)
    ap.add_argument("--dump_binaries", action="store_true", help="Also write every strategy's binary map.")
    ap.add_argument("--debug", action="store_true", help="Enable debug logs in the detector.")
    ap.add_argument("--log", action="store_true", help="Also write the log to detect_<timestamp>.log")

    args = ap.parse_args()

    logfile = f"detect_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log" if args.log else None
    configure_logging(logging.DEBUG if args.debug else logging.INFO, logfile)

    cfg = load_cfg(args.config) if args.config else merge_cfg(None)
    cfg["debug"] = args.debug
    if args.min_area_ratio is not None:
        cfg["min_area_ratio"] = args.min_area_ratio

    try:
        img = load_image(args.image)
    except FileNotFoundError as e:
        raise SystemExit(str(e))

    os.makedirs(args.out_dir, exist_ok=True)
    base = os.path.splitext(os.path.basename(args.image))[0]
    out_viz = args.out or os.path.join(args.out_dir, f"{base}_viz.png")
    out_rect = args.rect or os.path.join(args.out_dir, f"{base}_rect.png")
    out_scan = os.path.join(args.out_dir, f"{base}_scan.jpg")

    if args.dump_binaries:
        dump_binaries(img, cfg, args.out_dir, base)

    det = detect_document(img, cfg, max_dim=args.max_dim, mode=args.mode)
    vis = img.copy()

    if det is not None:
        quad = det.corners.pts
        h, w = img.shape[:2]
        area = cv2.contourArea(quad.astype(np.float32))
        log.info("[dbg] %s area%%=%.4f refined=%s", det.debug, area / float(w * h), det.refined)
        log.info("[dbg] parts=%s", {k: round(v, 1) for k, v in det.best.parts.items()})
        draw_quad(vis, det.corners, (0, 255, 0), 3)
        log.info("Detection corners:\n%s", quad)

        if args.gt:
            gt = load_quad(args.gt)
            draw_quad(vis, gt, (255, 0, 0), 1, fill_alpha=0.0, dot_radius=3)
            log.info("IoU vs ground truth: %.4f", iou_quads(quad, gt, img.shape))

        rectified = warp_document(img, det.corners, min_size=int(cfg["min_output_px"]))
        cv2.imwrite(out_rect, rectified)
        log.info("Saved rectified → %s", out_rect)

        scan = process_scan(rectified, args.filter, Adjustments())
        cv2.imwrite(out_scan, scan, [cv2.IMWRITE_JPEG_QUALITY, 92])
        log.info("Saved %s scan → %s", args.filter, out_scan)
    else:
        log.info("No document detected.")
        cv2.putText(vis, "NO DETECTION", (20, 40),
                    cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 0, 255), 2, cv2.LINE_AA)

    cv2.imwrite(out_viz, vis)
    log.info("Saved visualization → %s", out_viz)


if __name__ == "__main__":
    main()
