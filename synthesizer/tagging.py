import base64
import logging
from typing import Any, List, Optional

from langchain_core.messages import HumanMessage


logger = logging.getLogger(__name__)

FALLBACK_TAGS: List[str] = ["E-commerce Product", "Batch Variation"]

TAGGING_PROMPT = (
    "Analyze this product image for an e-commerce platform. Provide 6-10 highly "
    "relevant descriptive tags (keywords) separated by commas. Focus on material, "
    "style, color, and category. Return only the tags, no other text."
)


class ImageTagger:
    """
    Adapter for a vision-capable chat model that suggests listing keywords.

    `llm` is any LangChain chat model (e.g. `ChatOpenAI`). When it is None,
    or the call fails, the fixed fallback tags are returned instead.
    """

    def __init__(self, llm: Optional[Any] = None, mime_type: str = "image/jpeg") -> None:
        self.llm = llm
        self.mime_type = mime_type

    def analyze_image(self, image_bytes: bytes) -> List[str]:
        if self.llm is None:
            logger.warning("No vision model configured; using fallback tags.")
            return list(FALLBACK_TAGS)

        try:
            raw = self.llm.invoke([self._build_message(image_bytes)])
        except Exception as e:
            logger.warning("Vision analysis failed: %s", e)
            return list(FALLBACK_TAGS)

        text = getattr(raw, "content", None) or str(raw)
        if not isinstance(text, str):
            text = str(text)
        tags = parse_tags(text)
        logger.info("Suggested tags: %s", ", ".join(tags) or "(none)")
        return tags

    def __call__(self, image_bytes: bytes) -> List[str]:
        return self.analyze_image(image_bytes)

    def _build_message(self, image_bytes: bytes) -> HumanMessage:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        return HumanMessage(
            content=[
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{self.mime_type};base64,{encoded}"},
                },
                {"type": "text", "text": TAGGING_PROMPT},
            ]
        )


def parse_tags(text: str) -> List[str]:
    """
    Split a comma-separated model reply into tags, dropping empties and
    upper-casing the first letter of each.
    """
    tags = []
    for part in text.split(","):
        tag = part.strip()
        if tag:
            tags.append(tag[0].upper() + tag[1:])
    return tags
