"""
Surface Replacement for a Frame Sequence.

Reads still frames from a directory, tracks the marked surface from the
first frame onward and writes the composited frames.
"""
import os
import cv2
import argparse
from pathlib import Path
from typing import List, Tuple
from tqdm import tqdm

from surface_swap import PipelineConfig, SurfaceReplacementPipeline
from surface_swap.modules import ImageBuffer, TrackingState

FRAME_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp"}


def parse_corner(text: str) -> Tuple[float, float]:
    try:
        x, y = text.split(",")
        return float(x), float(y)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Corner must look like 'x,y', got '{text}'")


def list_frames(frames_dir: Path) -> List[Path]:
    return sorted(p for p in frames_dir.iterdir() if p.suffix.lower() in FRAME_EXTENSIONS)


def read_frame(path: Path, size: Tuple[int, int]) -> ImageBuffer:
    bgr = cv2.imread(str(path))
    if bgr is None:
        raise ValueError(f"Failed to read frame: {path}")
    if (bgr.shape[1], bgr.shape[0]) != size:
        bgr = cv2.resize(bgr, size)
    return ImageBuffer(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA))


def main():
    parser = argparse.ArgumentParser(description="Planar surface replacement for a frame sequence")
    parser.add_argument("--frames", required=True, help="Directory of input frames (sorted by name)")
    parser.add_argument("--image", required=True, help="Path to replacement image")
    parser.add_argument("--corners", required=True, nargs=4, type=parse_corner,
                        metavar="X,Y", help="Surface corners on the first frame, in drawing order")
    parser.add_argument("--output", default="output_frames", help="Directory for composited frames")
    parser.add_argument("--config", default=None, help="Optional YAML pipeline config")
    parser.add_argument("--foreground", action="store_true",
                        help="Enable motion-masked blending (keeps moving foreground in front)")

    args = parser.parse_args()

    frames_dir = Path(args.frames)
    if not frames_dir.is_dir():
        print(f"Frames directory not found: {frames_dir}")
        return

    if not os.path.exists(args.image):
        print(f"Image not found: {args.image}")
        return

    frame_paths = list_frames(frames_dir)
    if not frame_paths:
        print(f"No frames found in {frames_dir}")
        return

    config = PipelineConfig.from_yaml(args.config) if args.config else PipelineConfig()
    if args.foreground:
        config.compositor.use_foreground_detection = True
    size = (config.frame_width, config.frame_height)

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    lost = []
    pipeline = SurfaceReplacementPipeline(config, on_tracking_lost=lost.append)
    pipeline.load_ad("ad", args.image)

    print(f"Processing {len(frame_paths)} frames at {size[0]}x{size[1]}...")

    with read_frame(frame_paths[0], size) as first_frame:
        pipeline.mark_complete("surface", "ad", args.corners, first_frame)

    drawn = 0
    try:
        for path in tqdm(frame_paths, desc="Frames"):
            with read_frame(path, size) as frame:
                result = pipeline.process_frame(frame)
            if result is None:
                break

            with result.output as output:
                cv2.imwrite(str(output_dir / f"{path.stem}.png"),
                            cv2.cvtColor(output.data, cv2.COLOR_RGBA2BGR))
            drawn += result.overlays_drawn
    finally:
        tracker = pipeline.registry.get_tracker("surface")
        final_state = tracker.state if tracker is not None else TrackingState.IDLE
        pipeline.close()

    if lost:
        print("Warning: tracking was lost; re-mark the surface to recover.")
    print(f"Overlay drawn on {drawn}/{len(frame_paths)} frames (final state: {final_state.value})")
    print(f"Done! Saved to {output_dir}")


if __name__ == "__main__":
    main()
