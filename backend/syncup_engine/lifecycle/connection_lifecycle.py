# Handles connection requests, accepts, rejects, passes and likes.
#
# Per pair of profiles: none -> pending (A -> B) -> mutual, with pass as a
# separate one-way absorbing signal. Every transition updates both
# profiles through one store call, so sent/incoming and mutual stay
# symmetric. All set updates are unions or discards, so retries are safe.

import logging

from backend.syncup_engine.errors import (
    ConnectionBlocked,
    InvalidSelfReference,
    RequestNotPending,
)
from backend.syncup_engine.interfaces.db_interface import ProfileStore
from backend.syncup_engine.models.user_profile import RelationshipSnapshot

logger = logging.getLogger(__name__)


def _check_distinct(actor_id, target_id):
    if actor_id == target_id:
        raise InvalidSelfReference(actor_id)


class ConnectionLifecycleManager:

    def __init__(self, store: ProfileStore):
        self.store = store

    def request_connection(self, from_id: str, to_id: str) -> None:
        """
        Send a request from ``from_id`` to ``to_id``.

        Raises ConnectionBlocked if ``to_id`` has passed ``from_id``.
        Repeating a pending request, or requesting an existing mutual
        connection, is a no-op.
        """
        _check_distinct(from_id, to_id)

        def mutation(sender, receiver):
            if from_id in receiver.passed:
                raise ConnectionBlocked(from_id, to_id)
            if to_id in sender.mutual:
                return False
            sender.sent.add(to_id)
            receiver.incoming.add(from_id)
            return True

        if self.store.update_relationships(from_id, to_id, mutation):
            logger.info(f"Connection request {from_id} -> {to_id} pending")

    def accept_connection(self, of_id: str, from_id: str) -> None:
        """``of_id`` accepts the pending request sent by ``from_id``."""
        _check_distinct(of_id, from_id)

        def mutation(receiver, sender):
            if from_id not in receiver.incoming:
                if from_id in receiver.mutual:
                    # already accepted; a retried accept changes nothing
                    return False
                raise RequestNotPending(of_id, from_id)

            receiver.incoming.discard(from_id)
            sender.sent.discard(of_id)
            # a crossing request in the other direction is settled too
            receiver.sent.discard(from_id)
            sender.incoming.discard(of_id)

            receiver.mutual.add(from_id)
            sender.mutual.add(of_id)
            return True

        if self.store.update_relationships(of_id, from_id, mutation):
            logger.info(f"Connection {from_id} <-> {of_id} is now mutual")

    def reject_connection(self, of_id: str, from_id: str) -> None:
        """
        ``of_id`` declines the pending request sent by ``from_id``.

        Nothing is recorded beyond removing the request, so ``from_id``
        may ask again later.
        """
        _check_distinct(of_id, from_id)

        def mutation(receiver, sender):
            if from_id not in receiver.incoming:
                raise RequestNotPending(of_id, from_id)
            receiver.incoming.discard(from_id)
            sender.sent.discard(of_id)

        self.store.update_relationships(of_id, from_id, mutation)
        logger.info(f"Connection request {from_id} -> {of_id} rejected")

    def pass_candidate(self, of_id: str, target_id: str) -> None:
        """Record that ``of_id`` passed on ``target_id``; blocks future requests from the target."""
        _check_distinct(of_id, target_id)

        def mutation(passer, _target):
            passer.passed.add(target_id)

        self.store.update_relationships(of_id, target_id, mutation)
        logger.info(f"{of_id} passed on {target_id}")

    def toggle_like(self, of_id: str, target_id: str) -> bool:
        """Flip whether ``of_id`` likes ``target_id``; returns the new state."""
        _check_distinct(of_id, target_id)

        def mutation(liker, _target):
            if target_id in liker.liked:
                liker.liked.discard(target_id)
                return False
            liker.liked.add(target_id)
            return True

        liked = self.store.update_relationships(of_id, target_id, mutation)
        logger.debug(f"{of_id} {'liked' if liked else 'unliked'} {target_id}")
        return liked

    def get_relationship_state(self, profile_id: str) -> RelationshipSnapshot:
        return self.store.get_profile(profile_id).relationships.snapshot()
