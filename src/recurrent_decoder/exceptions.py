"""Exception hierarchy for recurrent-decoder.

All exceptions derive from DecoderError, enabling broad catch patterns
at the application boundary while allowing fine-grained handling internally.
Cancellation is not an exception: it is reported as a stop reason.
"""


class DecoderError(Exception):
    """Base exception for all recurrent-decoder errors."""


class ModelLoadError(DecoderError):
    """Model parameters, embeddings or vocabulary failed to load.

    Fatal: raised before any generation starts.
    """


class ModelInferenceError(DecoderError):
    """The model failed to encode or predict during a generation.

    Terminates the current call only. The recurrent state after a failed
    step is not known-good, so the call is never resumed or retried.
    """


class VocabularyLookupError(DecoderError):
    """A token id has no surface form in the loaded vocabulary."""


class ConfigurationError(DecoderError):
    """Decoding options failed validation.

    Raised before the decode loop makes its first model call.
    """


class TokenSelectionError(DecoderError):
    """Token selection failed.

    Raised when the logits are not finite or no candidate token survives
    top-k and top-p filtering.
    """


class ConversionError(DecoderError):
    """A foreign checkpoint could not be converted to the runtime layout."""


class DownloadError(DecoderError):
    """Model artifacts could not be fetched."""
