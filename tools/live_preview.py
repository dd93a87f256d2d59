#!/usr/bin/env python3
"""
Camera preview with the live document overlay.

    python tools/live_preview.py --device 0
    c = capture a page, q = quit
"""
from __future__ import annotations
import argparse, logging, os
from datetime import datetime
import cv2

from docscan.core.config import load_cfg, merge_cfg
from docscan.core.logs import configure_logging
from docscan.io.camera import VideoCaptureSource
from docscan.io.overlay import draw_quad
from docscan.session import ScanSession

log = logging.getLogger("docscan.tools.live_preview")


def _device(value: str):
    return int(value) if value.isdigit() else value


def main():
    ap = argparse.ArgumentParser(description="Live document detection preview.")
    ap.add_argument("--device", default="0", help="Camera index or video file/URL.")
    ap.add_argument("--config", help="YAML config to merge over the defaults.")
    ap.add_argument("--mode", choices=["thread", "process"], default=None, help="Host execution mode.")
    ap.add_argument("--out_dir", default="scans", help="Where captured pages are written.")
    ap.add_argument("--debug", action="store_true")
    args = ap.parse_args()

    configure_logging(logging.DEBUG if args.debug else logging.INFO)
    cfg = load_cfg(args.config) if args.config else merge_cfg(None)
    cfg["debug"] = args.debug
    if args.mode:
        cfg["host"]["mode"] = args.mode
    os.makedirs(args.out_dir, exist_ok=True)

    with VideoCaptureSource(_device(args.device)) as cam, ScanSession(cam, cfg) as session:
        if not session.host.wait_ready():
            raise SystemExit(f"Scanner runtime unavailable: {session.host.error}")
        while True:
            frame = cam.read()
            if frame is None:
                log.warning("[preview] camera returned no frame, stopping")
                break
            vis = frame.copy()
            quad = session.live_quad
            if quad is not None and quad.frame_size == (vis.shape[1], vis.shape[0]):
                draw_quad(vis, quad.corners)
            cv2.imshow("docscan", vis)

            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key == ord("c"):
                page = session.capture()
                if page.frame is None:
                    log.warning("[preview] camera returned no frame, press c again")
                    continue
                if page.needs_manual_crop:
                    log.info("[preview] no document on screen, cropping the default region")
                    page = session.crop_manual(page.frame, page.corners)
                path = os.path.join(args.out_dir, f"scan_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.jpg")
                with open(path, "wb") as f:
                    f.write(page.to_jpeg())
                log.info("[preview] saved page %dx%d → %s", page.page.shape[1], page.page.shape[0], path)
    cv2.destroyAllWindows()


if __name__ == "__main__":
    main()
