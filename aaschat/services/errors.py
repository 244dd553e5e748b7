from __future__ import annotations


class ChatPipelineError(Exception):
    """Base class for failures of a pipeline stage.

    ``kind`` is a stable tag reported to callers alongside the message.
    """

    kind = "pipeline"


class AuthenticationError(ChatPipelineError):
    kind = "authentication"


class SchemaFetchError(ChatPipelineError):
    kind = "schema"


class TemplateError(ChatPipelineError):
    kind = "template"


class TranslationServiceError(ChatPipelineError):
    kind = "translation"


class QueryExecutionError(ChatPipelineError):
    kind = "execution"
