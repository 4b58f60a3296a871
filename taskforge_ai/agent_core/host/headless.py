from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Optional

from ..schemas.domain import AskKind, AskResponse, AskResult, ProviderState, UiMessage

if TYPE_CHECKING:
    from ..task import Task

logger = logging.getLogger(__name__)

_DECLINED_BY_DEFAULT = (AskKind.api_req_failed, AskKind.resume_task, AskKind.resume_completed_task)


class HeadlessUI:
    """UI without a user: answers every ask from a fixed table and logs messages.

    Tool approvals, completion results and follow-up questions are approved.
    Retrying a failed request and resuming a persisted task are declined
    unless ``responses`` overrides them.

    Args:
        responses: Answers by ask kind, overriding the defaults.
    """

    def __init__(self, responses: Optional[Dict[AskKind, AskResult]] = None) -> None:
        self._responses: Dict[AskKind, AskResult] = {
            kind: AskResult(response=AskResponse.no_button) for kind in _DECLINED_BY_DEFAULT
        }
        self._responses.update(responses or {})

    async def ask(self, task: Task, message: UiMessage) -> AskResult:
        kind = message.ask or AskKind.followup
        answer = self._responses.get(kind, AskResult(response=AskResponse.yes_button))
        logger.info(f"[{task.task_id}] ask {kind.value}: {message.text or ''} -> {answer.response.value}")
        return answer

    async def say(self, task: Task, message: UiMessage) -> None:
        if message.partial:
            return
        kind = message.say.value if message.say else "say"
        logger.info(f"[{task.task_id}] {kind}: {message.text or ''}")

    async def update_message(self, task: Task, message: UiMessage) -> None:
        if message.partial:
            return
        kind = message.say.value if message.say else "say"
        logger.debug(f"[{task.task_id}] updated {kind}: {message.text or ''}")

    async def post_state(self, state: ProviderState) -> None:
        logger.debug(f"State: mode={state.mode} stack={state.task_stack}")
