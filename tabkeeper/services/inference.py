import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from langchain_core.messages import HumanMessage

from tabkeeper.error_handler import InferenceError
from tabkeeper.models import ClassifyResult

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Dict[str, Any]], Awaitable[None]]


class CancellationToken:
    """Per-request stop signal, checked between streamed chunks."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


def _chunk_text(chunk: Any) -> str:
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return ""


class InferenceService:
    """
    Owns the chat model used for classification. Created once at start-up and passed
    to whoever needs it; the model itself is built on first use.
    """

    def __init__(self, llm_factory: Callable[[], Any]):
        self._llm_factory = llm_factory
        self._llm = None
        self._lock = asyncio.Lock()
        self._active: Set[CancellationToken] = set()

    async def get_llm(self):
        async with self._lock:
            if self._llm is None:
                logger.info("Loading language model...")
                try:
                    self._llm = await asyncio.to_thread(self._llm_factory)
                except Exception as e:
                    raise InferenceError(f"Failed to load language model: {e}") from e
                logger.info("Language model ready.")
        return self._llm

    def interrupt(self) -> int:
        """Cancels every in-flight generation. Returns how many were running."""
        tokens = list(self._active)
        for token in tokens:
            token.cancel()
        return len(tokens)

    async def classify(
        self,
        text: str,
        callback: Optional[UpdateCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> ClassifyResult:
        llm = await self.get_llm()
        token = token or CancellationToken()
        self._active.add(token)

        async def emit(message: Dict[str, Any]) -> None:
            if callback:
                await callback(message)

        outputs = []
        num_tokens = 0
        start_time = None
        try:
            await emit({"status": "start"})
            async for chunk in llm.astream([HumanMessage(content=text)]):
                if token.cancelled:
                    break
                output = _chunk_text(chunk)
                if not output:
                    continue

                if start_time is None:
                    start_time = time.perf_counter()
                num_tokens += 1
                outputs.append(output)

                update: Dict[str, Any] = {"status": "update", "output": output, "numTokens": num_tokens}
                elapsed = time.perf_counter() - start_time
                if num_tokens > 1 and elapsed > 0:
                    update["tps"] = num_tokens / elapsed
                await emit(update)
        except Exception as e:
            raise InferenceError(f"Generation failed: {e}") from e
        finally:
            self._active.discard(token)

        if token.cancelled:
            logger.info(f"Generation interrupted after {num_tokens} chunk(s)")

        return ClassifyResult(output="".join(outputs), num_tokens=num_tokens, interrupted=token.cancelled)
