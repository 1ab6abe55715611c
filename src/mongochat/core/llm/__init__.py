"""Chat model access: a LangChain chat model behind the ``ModelProvider`` seam."""

from .deps import get_llm, get_model_provider  # noqa: F401
from .provider import ContentFilteredError, ModelProvider  # noqa: F401
