"""
Voice capture client: press-and-hold recording controller and upload transport.
"""

from .backend import AudioBackend, AudioBlob, AudioDevice, CaptureConstraints
from .recorder import CancellationSignal, CaptureState, RecordingController
from .transport import CaptureTransport, resolve_host_timezone
