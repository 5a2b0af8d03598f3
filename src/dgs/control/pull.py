from dgs.control.errors import PullError, RuntimeCallError


def format_progress(item: dict) -> str:
    """Render one pull progress item as ``id: status current/total``."""
    line = item.get("status", "")
    if item.get("id"):
        line = f"{item['id']}: {line}"
    detail = item.get("progressDetail") or {}
    current, total = detail.get("current"), detail.get("total")
    if current is not None and total:
        line = f"{line} {current}/{total}"
    return line


def _stream_error(item: dict) -> str | None:
    if item.get("error"):
        return str(item["error"])
    detail = item.get("errorDetail") or {}
    if detail.get("message"):
        return str(detail["message"])
    return None


def pull_image(runtime, image: str, tag: str | None = None, on_progress=None) -> None:
    """Pull ``image[:tag]``, reporting each progress line as it arrives.

    Raises PullError on the first error item; the rest of the stream is not read.
    """
    reference = f"{image}:{tag}" if tag else image
    try:
        for item in runtime.pull_image(image, tag=tag):
            error = _stream_error(item)
            if error:
                raise PullError(f"Failed to pull image {reference}: {error}")
            if on_progress:
                on_progress(format_progress(item))
    except RuntimeCallError as e:
        raise PullError(f"Failed to pull image {reference}: {e}") from e
