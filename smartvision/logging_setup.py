import logging

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def setup_logging(level: str = 'INFO') -> None:
    resolved = logging.getLevelName(level.strip().upper()) if level else logging.INFO
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)
    root.setLevel(resolved)

    # Third-party clients log every request at INFO.
    for noisy in ('httpx', 'httpcore', 'PIL'):
        logging.getLogger(noisy).setLevel(max(resolved, logging.WARNING))
