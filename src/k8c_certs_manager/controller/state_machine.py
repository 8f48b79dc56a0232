"""Certificate lifecycle transitions.

``plan`` maps what the reconciler observed to what it must do. It performs no
I/O, so the whole table can be exercised without a cluster:

==========  ==========  =====================  ==========================
intent      credential  other                  action
==========  ==========  =====================  ==========================
NONE        absent                             ISSUE
NONE        present     before renewal window  NOOP
NONE        present     inside renewal window  RENEW
CREATE      absent                             ISSUE
CREATE      present                            ADOPT
UPDATE      absent                             ISSUE, delete obsolete
UPDATE      present                            ROTATE, delete obsolete
CLEANUP                 marker set             CLEANUP
CLEANUP                 marker absent          NOOP
==========  ==========  =====================  ==========================

Every row leaves the intent at NONE. When deleting the obsolete Secret fails
the reconciler moves the intent to CLEANUP instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from k8c_certs_manager.integrations.kubernetes.models.certificate import Intent


class Action(StrEnum):
    """Work the reconciler performs for one pass."""

    ISSUE = "issue"
    ADOPT = "adopt"
    ROTATE = "rotate"
    RENEW = "renew"
    CLEANUP = "cleanup"
    NOOP = "noop"


@dataclass(frozen=True)
class Observation:
    """What the reconciler saw before acting."""

    intent: Intent
    credential_exists: bool
    renewal_due: bool = False
    expired: bool = False
    has_obsolete: bool = False


@dataclass(frozen=True)
class Transition:
    """The action to run and the intent to leave behind on success."""

    action: Action
    next_intent: Intent = Intent.NONE
    delete_obsolete: bool = False

    @property
    def issues_credential(self) -> bool:
        """Whether this transition writes new key material."""
        return self.action in (Action.ISSUE, Action.ROTATE, Action.RENEW)


def plan(observation: Observation) -> Transition:
    """Decide the transition for ``observation``."""
    intent = observation.intent

    if intent == Intent.CLEANUP:
        if observation.has_obsolete:
            return Transition(Action.CLEANUP, delete_obsolete=True)
        return Transition(Action.NOOP)

    if intent == Intent.UPDATE:
        action = Action.ROTATE if observation.credential_exists else Action.ISSUE
        return Transition(action, delete_obsolete=observation.has_obsolete)

    if not observation.credential_exists:
        return Transition(Action.ISSUE)

    if intent == Intent.CREATE:
        return Transition(Action.ADOPT)

    if observation.renewal_due or observation.expired:
        return Transition(Action.RENEW)
    return Transition(Action.NOOP)
