class ListenOSError(Exception):
    """Base class for voice core errors."""


class ClassificationUnavailable(ListenOSError):
    """Remote classifier could not be reached or answered with a non-2xx status."""


class MalformedClassifierResponse(ListenOSError):
    """Remote classifier answered, but not with a usable JSON action."""


class NoPendingAction(ListenOSError):
    """Confirm was requested while no action was awaiting confirmation."""


class PendingActionExists(ListenOSError):
    """A second action was submitted while one is still awaiting confirmation."""


class ExecutionFailed(ListenOSError):
    """The action executor reported that the action did not run."""


class ProcessingTimeout(ListenOSError):
    """Transcription plus resolution exceeded the processing window."""


class TranscriptionFailed(ListenOSError):
    pass


class SpeechSynthesisFailed(ListenOSError):
    pass


class IntentApiError(ListenOSError):
    pass


class RecordingFailed(ListenOSError):
    pass
