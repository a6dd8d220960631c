import logging
from typing import Optional

from tabkeeper.extension_bridge import ExtensionBridge
from tabkeeper.models import ClassifyResult, ContextMenuClick
from tabkeeper.services.inference import InferenceService

logger = logging.getLogger(__name__)

CLASSIFY_SELECTION_MENU_ID = "classify-selection"

# Shown only when text is selected; %s is replaced by the selection.
CONTEXT_MENU_ITEMS = [
    {
        "id": CLASSIFY_SELECTION_MENU_ID,
        "title": 'Classify "%s"',
        "contexts": ["selection"],
    },
]


class ContextMenuHandler:
    """Classifies selected text from the page context menu and hands the result to that tab."""

    def __init__(self, inference: InferenceService, bridge: ExtensionBridge):
        self.inference = inference
        self.bridge = bridge

    async def __call__(self, click: ContextMenuClick) -> Optional[ClassifyResult]:
        if click.menu_item_id != CLASSIFY_SELECTION_MENU_ID or not click.selection_text:
            return None

        result = await self.inference.classify(click.selection_text)
        if click.tab_id is None:
            logger.warning("Context menu click without a tab; result not delivered.")
            return result

        await self.bridge.rpc_call(
            "scripting.executeScript",
            {"tabId": click.tab_id, "args": [result.model_dump(by_alias=True)]},
        )
        return result
