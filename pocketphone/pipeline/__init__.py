"""Contact reply pipeline.

Executes one reply turn for a contact:
  1. Compose — persona, world book entries visible to the contact, restricted
     terms, and the last 20 messages become a chat completion request.
  2. Call the model gateway (no retries; errors abort the turn).
  3. Segment — pull the [STATUS: mood] tag, split on [MSG_SPLIT], fall back
     to sentence splitting when the model gave fewer than 5 parts.
  4. Drip-deliver fragments into the conversation log, 800–2000 ms apart,
     cancellable between fragments.

ChatSession owns turn tasks per contact: a new user turn or a regeneration
cancels the one in flight. Regeneration truncates the trailing model
messages and re-enters at step 1.
"""

from .core import run_turn  # noqa: F401
from .delivery import (  # noqa: F401
    CancelToken,
    DeliveryScheduler,
    Sleep,
)
from .segments import (  # noqa: F401
    extract_mood,
    segment,
    split_sentences,
)
from .session import (  # noqa: F401
    DEFAULT_MOOD,
    ActivePresetGateway,
    ChatSession,
    ContextSource,
    StorageContext,
    gateway_for,
)
