from __future__ import annotations


class CaptureError(RuntimeError):
    """Base for failures of the multi-view capture path."""

    kind = "capture_error"
    status_code = 500


class RenderTargetUnavailable(CaptureError):
    """The renderer has no surface to draw into, or the draw call failed."""

    kind = "render_target_unavailable"


class EncodeFailed(CaptureError):
    """The rendered surface could not be encoded as an image."""

    kind = "encode_failed"


class MeshNotReady(CaptureError):
    """No usable mesh: missing file, unreadable data, or zero triangles."""

    kind = "mesh_not_ready"
    status_code = 422
