"""
Client Orchestrator

Drives one user action end to end: capture the latest frame, extract a
descriptor, make exactly one protocol call, return the outcome.

Collaborators are passed in explicitly:
    - descriptor_source: DescriptorSource (frame -> Optional[embedding])
    - frame_provider: zero-argument callable returning the latest BGR frame
                      (a WebcamCapture instance works)
    - api_client: object with register(name, embedding) and
                  recognize(embedding), e.g. frontend.api_client.APIClient

Actions are serialized per orchestrator. Starting an action while another
is still running raises ActionInProgressError instead of queueing it.
Nothing is retried and nothing is cached between actions.

Usage:
    orchestrator = ClientOrchestrator(source, webcam, client)
    orchestrator.enroll("Alice")
    decision = orchestrator.verify()
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Optional

import numpy as np

from core.descriptor_source import DescriptorSource
from core.errors import ActionInProgressError, NoFaceDetectedError
from core.matching.interfaces import Decision, validate_name

logger = logging.getLogger(__name__)


class ClientOrchestrator:
    """
    Sequential capture -> descriptor -> network -> decision pipeline.

    Attributes:
        descriptor_source: Extracts descriptors from frames.
        frame_provider: Returns the most recent camera frame.
        api_client: Sends the protocol messages.
    """

    def __init__(
        self,
        descriptor_source: DescriptorSource,
        frame_provider: Callable[[], np.ndarray],
        api_client,
    ):
        self.descriptor_source = descriptor_source
        self.frame_provider = frame_provider
        self.api_client = api_client
        self._busy = threading.Lock()

    @property
    def busy(self) -> bool:
        """True while an action is in flight."""
        return self._busy.locked()

    @contextmanager
    def _action(self, name: str):
        if not self._busy.acquire(blocking=False):
            raise ActionInProgressError(f"Cannot start {name}: another action is in progress")
        try:
            yield
        finally:
            self._busy.release()

    def _capture(self) -> np.ndarray:
        frame = self.frame_provider()
        embedding = self.descriptor_source.describe(frame)
        if embedding is None:
            raise NoFaceDetectedError()
        return embedding

    def capture_descriptor(self) -> np.ndarray:
        """
        Describe the latest frame once.

        Returns:
            (D,) float32 descriptor of the selected face.

        Raises:
            NoFaceDetectedError: If the frame holds no face.
            CameraUnavailableError: If no frame could be read.
            ActionInProgressError: If another action is running.
        """
        with self._action("capture"):
            return self._capture()

    def enroll(self, name: str, embedding: Optional[np.ndarray] = None):
        """
        Enroll a name, capturing a descriptor first unless one is given.

        The name is checked before anything is captured or sent. No
        duplicate-name check is made here; the backend's re-enrollment
        policy decides what a second enrollment of the same name means.

        Returns:
            The api client's acknowledgement (EnrollAck).

        Raises:
            EmptyNameError: If the name is blank.
            NoFaceDetectedError: If capture finds no face.
            StoreUnavailableError: If the backend or its store is down.
            ActionInProgressError: If another action is running.
        """
        name = validate_name(name)

        with self._action("enroll"):
            if embedding is None:
                embedding = self._capture()
            ack = self.api_client.register(name, embedding)

        logger.info(f"Enrollment complete for {name}")
        return ack

    def verify(self, embedding: Optional[np.ndarray] = None) -> Decision:
        """
        Identify the person in front of the camera.

        Returns:
            Decision from the backend. "Not recognized" is allowed=False,
            never an exception.

        Raises:
            NoFaceDetectedError: If capture finds no face.
            StoreUnavailableError: If the backend or its store is down.
            ActionInProgressError: If another action is running.
        """
        with self._action("verify"):
            if embedding is None:
                embedding = self._capture()
            decision = self.api_client.recognize(embedding)

        if decision.allowed:
            logger.info(f"Access granted to {decision.name}")
        else:
            logger.info("Access denied: face not recognized")
        return decision
