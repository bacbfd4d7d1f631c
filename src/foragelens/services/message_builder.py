from typing import List, Optional, Sequence

from foragelens.errors import ContextTooLargeError
from foragelens.models.schemas import ContentPart, ImageURL, LLMMessage
from foragelens.services.species_pruning import estimate_tokens

# Context window of the default text model, minus headroom for the answer.
DEFAULT_MAX_CONTEXT_TOKENS = 190_000
IMAGE_TOKEN_ESTIMATE = 1000


def _role(message) -> str:
    role = message.role
    return getattr(role, "value", role)


def _convert(message, include_photos: bool) -> LLMMessage:
    role = _role(message)
    if role != "user" or not include_photos or not message.photos:
        return LLMMessage(role=role, content=message.content)

    parts = [ContentPart(type="text", text=message.content)]
    parts.extend(ContentPart(type="image_url", image_url=ImageURL(url=url)) for url in message.photos)
    return LLMMessage(role="user", content=parts)


def estimate_message_tokens(message: LLMMessage) -> int:
    if isinstance(message.content, str):
        return estimate_tokens(message.content)
    tokens = 0
    for part in message.content:
        if part.type == "image_url":
            tokens += IMAGE_TOKEN_ESTIMATE
        elif part.text:
            tokens += estimate_tokens(part.text)
    return tokens


def build_llm_messages(
    conversation_messages: Sequence,
    system_prompt: Optional[str] = None,
    max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS,
) -> List[LLMMessage]:
    """
    Convert stored conversation turns into model messages.

    Photos are only sent with the latest user turn. Turns are taken newest
    first until the token budget runs out; everything older is dropped. The
    system prompt, when given, always leads and is paid for up front. Raises
    ContextTooLargeError when the latest user turn itself does not fit.
    """
    remaining = max_context_tokens
    head: List[LLMMessage] = []
    if system_prompt is not None:
        head.append(LLMMessage(role="system", content=system_prompt))
        remaining -= estimate_tokens(system_prompt)

    last_user_index = next(
        (i for i in range(len(conversation_messages) - 1, -1, -1) if _role(conversation_messages[i]) == "user"),
        -1,
    )

    kept: List[LLMMessage] = []
    oldest_kept = len(conversation_messages)
    for index in range(len(conversation_messages) - 1, -1, -1):
        converted = _convert(conversation_messages[index], include_photos=index == last_user_index)
        tokens = estimate_message_tokens(converted)
        if tokens > remaining:
            break
        kept.append(converted)
        remaining -= tokens
        oldest_kept = index

    if last_user_index >= 0 and oldest_kept > last_user_index:
        raise ContextTooLargeError()

    kept.reverse()
    return head + kept
