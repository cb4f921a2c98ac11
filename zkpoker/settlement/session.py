"""
Match session: one heads-up match wired to its commitments, ledger and
settlement.

The betting machine stays the authority for play. The session mirrors what
happens onto the ledger without making players wait for it:

- start_hand binds both commitments before any community card exists
  (actions wait until binding is done), then queues init_hand and both
  bind_commitment writes (confirmed in order on the signer lane);
- every chip movement is mirrored as a fire-and-forget post_bet, and
  uncalled chips handed back by the betting machine as a return_excess;
- new community cards are queued as a confirmed reveal;
- a finished hand is handed to the orchestrator in the background, and a
  LOCAL_ONLY one can be sent again with retry_settlement.

Listeners receive a snapshot after every transition; this is the push side of
the session transport.
"""

from __future__ import annotations
import asyncio
import inspect
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from zkpoker.agents.base import BaseAgent, decide_action
from zkpoker.agents.random_agent import create_agent
from zkpoker.config import Config
from zkpoker.core.card import cards_to_ints
from zkpoker.core.game import ActionResult, HandRecord, HeadsUpGame
from zkpoker.core.rules import Action, GamePhase
from zkpoker.crypto.commitment import CommitmentVault
from zkpoker.crypto.poseidon import CircuitCommitter, NargoCommitter
from zkpoker.ledger import operations as ops
from zkpoker.ledger.client import HttpLedgerClient, LedgerClient
from zkpoker.ledger.memory import InMemoryLedger
from zkpoker.ledger.operations import LedgerOperation, OperationResult
from zkpoker.ledger.sequencer import LedgerSequencer
from zkpoker.proof.clients import AttestationClient, CircuitClient
from zkpoker.proof.pipeline import ProofPipeline
from zkpoker.proof.verifier import BarretenbergVerifier
from zkpoker.settlement.orchestrator import SettlementOrchestrator, SettlementOutcome


logger = logging.getLogger(__name__)

Listener = Callable[[str, "MatchSession"], Union[None, Awaitable[None]]]


class MatchSession:
    """
    Usage:
        session = build_session(load_config())
        await session.start_hand()
        await session.act(Call(), "human")
        await session.play_opponent()
    """

    def __init__(
        self,
        game: HeadsUpGame,
        vault: CommitmentVault,
        sequencer: LedgerSequencer,
        orchestrator: SettlementOrchestrator,
        signer: str,
        opponent: Optional[BaseAgent] = None,
        decision_timeout: float = 10.0,
    ):
        self.game = game
        self.vault = vault
        self.sequencer = sequencer
        self.orchestrator = orchestrator
        self.signer = signer
        self.opponent = opponent
        self.decision_timeout = decision_timeout

        self._listeners: List[Listener] = []
        self._settlements: Dict[int, "asyncio.Task[SettlementOutcome]"] = {}
        self._background: List["asyncio.Future[OperationResult]"] = []
        self._revealed = 0
        self._history_seen = 0
        self._settled_hand = 0
        self._turn_lock: Optional[asyncio.Lock] = None

    # ============= Hand flow =============

    async def start_hand(self) -> bool:
        """Start the next hand and publish its opening record."""
        async with self._lock():
            stacks = [p.stack for p in self.game.players]
            if not self.game.start_hand():
                await self._notify("game_over" if self.game.is_game_over() else "rejected")
                return False

            game = self.game
            self._revealed = 0
            self._history_seen = 0
            blinds = [0, 0]
            blinds[game.small_blind_position] = game.small_blind
            blinds[game.big_blind_position] = game.big_blind

            # No action is accepted until both hands are bound
            commitments = await asyncio.gather(*(
                self.vault.bind(game.hand_id, p.player_id, cards_to_ints(p.hole_cards))
                for p in game.players
            ))
            player_ids = [p.player_id for p in game.players]

            self._queue(ops.init_hand(
                self.signer, game.game_id, game.hand_id, player_ids, stacks,
                dealer=game.dealer_position, blinds=blinds,
            ))
            for pid, commitment in zip(player_ids, commitments):
                self._queue(ops.bind_commitment(
                    self.signer, game.game_id, game.hand_id, pid, commitment.ledger_hex
                ))

            if self.opponent is not None:
                self.opponent.on_hand_start(game.hand_id)
            await self._after_transition("hand_started")
            return True

    async def act(self, action: Action, player_id: Optional[str] = None) -> ActionResult:
        """
        Apply an action for the player to act. Illegal actions come back as a
        failed ActionResult and never reach the ledger.
        """
        async with self._lock():
            actor = self.game.current_player
            result = self.game.take_action(action, player_id)
            if not result.success:
                return result

            if result.amount > 0:
                self._queue(ops.post_bet(
                    self.signer, self.game.game_id, self.game.hand_id, actor.player_id, result.amount
                ))
            await self._after_transition("action")
            return result

    async def play_opponent(self) -> List[ActionResult]:
        """Let the bot seat act until it is someone else's turn."""
        results: List[ActionResult] = []
        if self.opponent is None:
            return results
        while self.game.is_hand_running():
            player = self.game.current_player
            if player.player_id != self.opponent.player_id:
                break
            state = self.game.get_state(player.player_id)
            legal = self.game.get_legal_actions(player)
            action = await decide_action(self.opponent, state, legal, self.decision_timeout)
            result = await self.act(action, player.player_id)
            if not result.success:
                logger.error(f"Opponent action {action!r} rejected: {result.message}")
                break
            results.append(result)
        return results

    async def _after_transition(self, event: str) -> None:
        game = self.game
        self._mirror_refunds()
        board = cards_to_ints(game.community_cards)
        if len(board) > self._revealed:
            self._queue(ops.reveal_community_cards(self.signer, game.game_id, game.hand_id, board))
            self._revealed = len(board)

        if game.phase == GamePhase.HAND_OVER and game.hand_id != self._settled_hand:
            self._settled_hand = game.hand_id
            self._schedule_settlement()
            if self.opponent is not None:
                self.opponent.on_hand_end(game.result.to_dict())
            event = "hand_over"

        await self._notify(event)

    def _schedule_settlement(self) -> None:
        record = self.game.showdown_record()
        self._settlements = {h: t for h, t in self._settlements.items() if not t.done()}
        self._settlements[record.hand_id] = asyncio.get_running_loop().create_task(
            self._settle(record)
        )

    async def _settle(self, record: HandRecord) -> SettlementOutcome:
        outcome = await self.orchestrator.settle(record)
        await self._notify("settled")
        return outcome

    async def retry_settlement(self, hand_id: int) -> Optional[SettlementOutcome]:
        """Settle a LOCAL_ONLY hand on the ledger again; None for an unknown hand."""
        outcome = await self.orchestrator.retry(hand_id)
        if outcome is not None:
            await self._notify("settled")
        return outcome

    def _lock(self) -> asyncio.Lock:
        # Created on first use so it belongs to the running loop
        if self._turn_lock is None:
            self._turn_lock = asyncio.Lock()
        return self._turn_lock

    # ============= Ledger mirroring =============

    def _queue(self, operation: LedgerOperation) -> None:
        future = self.sequencer.submit_nowait(operation)
        future.add_done_callback(self._log_background_result)
        self._background.append(future)
        self._background = [f for f in self._background if not f.done()]

    def _mirror_refunds(self) -> None:
        game = self.game
        for entry in game.hand_history[self._history_seen:]:
            if entry["action"] == "RETURN_EXCESS":
                self._queue(ops.return_excess(
                    self.signer, game.game_id, game.hand_id, entry["player"], entry["amount"]
                ))
        self._history_seen = len(game.hand_history)

    @staticmethod
    def _log_background_result(future: "asyncio.Future[OperationResult]") -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"Ledger write failed, hand continues locally: {type(error).__name__}: {error}")

    # ============= Queries =============

    def settlement(self, hand_id: int) -> Optional[SettlementOutcome]:
        return self.orchestrator.outcome(hand_id)

    def get_state(self, player_id: Optional[str] = None) -> Dict[str, Any]:
        state = self.game.get_state(player_id)
        outcome = self.settlement(self.game.hand_id) if self.game.hand_id else None
        state["public_info"]["settlement"] = outcome.to_dict() if outcome else None
        return state

    # ============= Listeners =============

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event, self)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Session listener failed on {event}: {e}")

    # ============= Lifecycle =============

    async def drain(self) -> None:
        """Wait for queued ledger writes and running settlements."""
        await self.sequencer.drain()
        if self._settlements:
            await asyncio.gather(*self._settlements.values(), return_exceptions=True)
        await self.sequencer.drain()

    async def close(self) -> None:
        for task in self._settlements.values():
            if not task.done():
                task.cancel()
        await self.sequencer.close()


def _ledger_client(config: Config) -> LedgerClient:
    ledger = config.ledger
    if ledger.backend == "http":
        return HttpLedgerClient(ledger.url, timeout=ledger.timeout)
    return InMemoryLedger(confirm_delay=ledger.confirm_delay)


def _committer(config: Config, pipeline: Optional[ProofPipeline]) -> Optional[CircuitCommitter]:
    proof = config.proof
    if proof.enabled and proof.commitment_backend == "nargo":
        return NargoCommitter(binary=proof.nargo_binary, timeout=proof.commit_timeout)
    if pipeline is not None and isinstance(pipeline.circuit, CircuitCommitter):
        return pipeline.circuit
    return None


def build_session(
    config: Config,
    ledger_client: Optional[LedgerClient] = None,
    pipeline: Optional[ProofPipeline] = None,
    game_id: Optional[str] = None,
    committer: Optional[CircuitCommitter] = None,
    rng: Optional[random.Random] = None,
) -> MatchSession:
    """
    Assemble a session from configuration.

    Without an enabled proof configuration (and no pipeline passed in) hands
    are settled locally only; the ledger still receives the betting record.
    Circuit commitments come from the circuit service, or from a local nargo
    when proof.commitment_backend is "nargo".
    """
    table = config.table
    game = HeadsUpGame(
        big_blind=table.big_blind,
        small_blind=table.small_blind,
        buy_in=table.buy_in,
        player_ids=[table.human_id, table.bot_id],
        bot_seats=(1,),
        game_id=game_id,
        rng=rng,
    )

    sequencer = LedgerSequencer(
        ledger_client or _ledger_client(config),
        sequence_retry=config.ledger.sequence_retry.policy(),
        busy_retry=config.ledger.busy_retry.policy(),
        poll_interval=config.ledger.poll_interval,
        max_polls=config.ledger.max_polls,
    )

    if pipeline is None and config.proof.enabled:
        proof = config.proof
        pipeline = ProofPipeline(
            circuit=CircuitClient(proof.circuit_url, timeout=proof.prove_timeout),
            verifier=BarretenbergVerifier(
                proof.verification_key, binary=proof.verifier_binary, timeout=proof.verify_timeout
            ),
            attestation=AttestationClient(proof.attestation_url) if proof.attestation_url else None,
            attestation_retry=proof.attestation_retry.policy(),
            prove_timeout=proof.prove_timeout,
        )

    if pipeline is None:
        logger.info("Proof services not configured, showdowns settle locally")

    vault = CommitmentVault(committer or _committer(config, pipeline))
    settlement = config.settlement
    orchestrator = SettlementOrchestrator(
        pipeline, sequencer, vault,
        signer=config.ledger.signer,
        timeout=settlement.timeout,
        retain_unsettled=settlement.retain_unsettled,
        history=settlement.history,
    )
    return MatchSession(
        game=game,
        vault=vault,
        sequencer=sequencer,
        orchestrator=orchestrator,
        signer=config.ledger.signer,
        opponent=create_agent(table.bot_agent, table.bot_id),
        decision_timeout=table.decision_timeout,
    )
