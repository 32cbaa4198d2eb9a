import threading

from PIL import Image


class CameraUnavailableError(RuntimeError):
    pass


class Camera:
    def start(self) -> None:
        raise NotImplementedError

    def read_frame(self) -> Image.Image:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    @property
    def is_open(self) -> bool:
        return False


class OpenCVCamera(Camera):
    def __init__(self, index: int = 0, width: int = 1280, height: int = 720) -> None:
        self._index = index
        self._width = width
        self._height = height
        self._capture = None
        # Reads run on worker threads while stop() runs on the event loop.
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def start(self) -> None:
        import cv2

        with self._lock:
            if self._capture is not None:
                return
            capture = cv2.VideoCapture(self._index)
            if not capture.isOpened():
                capture.release()
                raise CameraUnavailableError(f'Camera {self._index} could not be opened. Check permissions and availability.')
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)
            self._capture = capture

    def read_frame(self) -> Image.Image:
        import cv2

        with self._lock:
            if self._capture is None:
                raise RuntimeError('camera is not started')
            ok, frame = self._capture.read()
        if not ok or frame is None:
            raise RuntimeError('camera returned no frame')
        # OpenCV is BGR, PIL expects RGB
        return Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))

    def stop(self) -> None:
        with self._lock:
            capture = self._capture
            self._capture = None
        if capture is not None:
            capture.release()
