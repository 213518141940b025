"""
Capture client for the Face Access System.

- api_client: httpx client for POST /register and POST /recognize
- webcam_capture: OpenCV camera returning the latest frame
- cli: face-access-enroll / face-access-verify command-line entry points
"""
