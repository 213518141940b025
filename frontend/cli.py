"""
Command-line front end for enrollment and verification.

Usage:
    face-access-enroll "Alice"                  # capture from webcam
    face-access-enroll "Alice" --image a.jpg    # describe a still image
    face-access-verify
    face-access-verify --image probe.jpg --url http://localhost:4000

Exit codes:
    0  enrolled / access granted
    1  access denied (face not recognized)
    2  capture failed (no face, camera unavailable)
    3  enrollment store or backend unavailable
    4  rejected request (blank name, bad descriptor, protocol error)
"""

import argparse
import logging
import sys
from typing import Callable, List, Optional

import cv2
import numpy as np

from core.config import (
    CONFIG_ENV_VAR,
    get_camera_config,
    get_client_config,
    get_descriptor_config,
    get_matching_config,
)
from core.descriptor_source import FaceRecognitionSource
from core.errors import (
    CameraUnavailableError,
    CaptureError,
    FaceAccessError,
    StoreUnavailableError,
)
from core.orchestrator import ClientOrchestrator
from frontend.api_client import APIClient
from frontend.webcam_capture import CaptureConfig, WebcamCapture

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DENIED = 1
EXIT_CAPTURE_FAILED = 2
EXIT_UNAVAILABLE = 3
EXIT_REJECTED = 4


def image_frame_provider(path: str) -> Callable[[], np.ndarray]:
    """Frame provider that always returns the same still image."""
    frame = cv2.imread(path, cv2.IMREAD_COLOR)
    if frame is None:
        raise CameraUnavailableError(f"Cannot read image: {path}")
    return lambda: frame


def build_parser(description: str, with_name: bool) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=description,
        epilog=f"Settings are read from config.yaml in the project root or from "
               f"the file named by the {CONFIG_ENV_VAR} environment variable.",
    )
    if with_name:
        parser.add_argument("name", help="Display name to enroll")
    parser.add_argument("--image", help="Describe this image instead of the webcam")
    parser.add_argument("--url", help="Backend base URL (default: client.base_url from config)")
    parser.add_argument("--camera", type=int, help="Camera device id (default: from config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _run(args: argparse.Namespace, action: Callable[[ClientOrchestrator], int]) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    client_config = dict(get_client_config())
    if args.url:
        client_config["base_url"] = args.url

    descriptor_config = dict(get_descriptor_config())
    descriptor_config.setdefault("embedding_dim", get_matching_config().get("embedding_dim", 128))
    source = FaceRecognitionSource(descriptor_config)

    webcam = None
    try:
        if args.image:
            frame_provider = image_frame_provider(args.image)
        else:
            capture_config = CaptureConfig.from_dict(get_camera_config())
            if args.camera is not None:
                capture_config.device_id = args.camera
            webcam = WebcamCapture(capture_config)
            webcam.open()
            frame_provider = webcam

        with APIClient.from_config(client_config) as client:
            orchestrator = ClientOrchestrator(source, frame_provider, client)
            return action(orchestrator)

    except CaptureError as e:
        print(f"Capture failed: {e}")
        return EXIT_CAPTURE_FAILED
    except StoreUnavailableError as e:
        print(f"Service unavailable: {e}")
        return EXIT_UNAVAILABLE
    except FaceAccessError as e:
        print(f"Request rejected ({e.code}): {e}")
        return EXIT_REJECTED
    finally:
        if webcam is not None:
            webcam.close()


def main_enroll(argv: Optional[List[str]] = None) -> int:
    args = build_parser("Enroll a face with the Face Access backend", with_name=True).parse_args(argv)

    def enroll(orchestrator: ClientOrchestrator) -> int:
        ack = orchestrator.enroll(args.name)
        print(f"Registered Successfully! {ack.name} has been registered "
              f"({ack.records_for_name} sample(s) on file).")
        return EXIT_OK

    return _run(args, enroll)


def main_verify(argv: Optional[List[str]] = None) -> int:
    args = build_parser("Verify a face against the Face Access backend", with_name=False).parse_args(argv)

    def verify(orchestrator: ClientOrchestrator) -> int:
        decision = orchestrator.verify()
        if decision.allowed:
            print(f"Access Granted. Welcome back, {decision.name}!")
            return EXIT_OK
        print("Access Denied. Face not recognized. Please try again.")
        return EXIT_DENIED

    return _run(args, verify)


def enroll_entry() -> None:
    sys.exit(main_enroll())


def verify_entry() -> None:
    sys.exit(main_verify())
