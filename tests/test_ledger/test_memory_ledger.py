"""
Tests for the in-process ledger: sequence rules and the poker contract.
"""

import asyncio
from dataclasses import replace

import pytest
from zkpoker.core.card import cards_to_ints, parse_cards
from zkpoker.core.hand import evaluate
from zkpoker.crypto.commitment import ledger_commitment
from zkpoker.errors import LedgerBusy, SequenceConflict
from zkpoker.ledger import operations as ops
from zkpoker.ledger.memory import InMemoryLedger
from zkpoker.ledger.operations import ShowdownClaim, TxStatus

SIGNER = "house"
GAME = "g1"
SALTS = {"alice": "11" * 32, "bob": "22" * 32}


async def apply(ledger, operation):
    """Submit at the next free sequence and wait until it settles."""
    sequence = await ledger.get_sequence(operation.signer) + 1
    reference = await ledger.submit(operation, sequence)
    while await ledger.get_status(reference) == TxStatus.PENDING:
        await asyncio.sleep(0.001)
    return ledger.transaction(reference)


def claims_for(holes, board, salts=SALTS):
    """Showdown claims built from real evaluations."""
    claims = []
    for player, hole in holes.items():
        value = evaluate(parse_cards(hole) + parse_cards(board))
        claims.append(ShowdownClaim(
            player=player,
            proof_hash=f"proof-{player}",
            rank=int(value.rank),
            tiebreak=list(value.tiebreak),
            cards=cards_to_ints(parse_cards(hole)),
            salt=salts[player],
        ))
    return claims


async def play_to_river(ledger, holes, board, blinds=(10, 20), limp=True, hand_id=1):
    """Init, bind, optionally limp, and reveal the full board; returns the claims."""
    players = list(holes)
    await apply(ledger, ops.init_hand(SIGNER, GAME, hand_id, players, [1000, 1000], 0, list(blinds)))
    for player, hole in holes.items():
        commitment = ledger_commitment(cards_to_ints(parse_cards(hole)), SALTS[player])
        await apply(ledger, ops.bind_commitment(SIGNER, GAME, hand_id, player, commitment.hex()))
    if limp and blinds[1] > blinds[0]:
        await apply(ledger, ops.post_bet(SIGNER, GAME, hand_id, players[0], blinds[1] - blinds[0]))
    board_ints = cards_to_ints(parse_cards(board))
    for n in (3, 4, 5):
        await apply(ledger, ops.reveal_community_cards(SIGNER, GAME, hand_id, board_ints[:n]))

    claims = claims_for(holes, board)
    for claim in claims:
        await apply(ledger, ops.record_attestation(
            SIGNER, GAME, hand_id, f"att-{claim.player}", claim.proof_hash,
            claim.player, claim.rank, True,
        ))
    return claims


class TestSequenceRules:
    """Account sequence behaviour."""

    def test_sequence_is_stale_until_settled(self):
        """Test get_sequence only counts applied writes."""
        async def scenario():
            ledger = InMemoryLedger(confirm_delay=0.01)
            op = ops.init_hand(SIGNER, GAME, 1, ["a", "b"], [100, 100])
            await ledger.submit(op, 1)
            stale = await ledger.get_sequence(SIGNER)
            await asyncio.sleep(0.03)
            return stale, await ledger.get_sequence(SIGNER)

        assert asyncio.run(scenario()) == (0, 1)

    def test_next_free_sequence_counts_queued(self):
        """Test a second write must skip past the queued one."""
        async def scenario():
            ledger = InMemoryLedger(confirm_delay=0.01)
            op = ops.post_bet(SIGNER, GAME, 1, "a", 5)
            await ledger.submit(op, 1)
            with pytest.raises(SequenceConflict):
                await ledger.submit(op, 1)
            await ledger.submit(op, 2)
            await asyncio.sleep(0.03)
            return ledger

        ledger = asyncio.run(scenario())
        assert ledger.applied_sequences == [(SIGNER, 1), (SIGNER, 2)]
        assert ledger.rejected_sequences == [(SIGNER, 1)]

    def test_signers_are_independent(self):
        """Test each account has its own sequence."""
        async def scenario():
            ledger = InMemoryLedger()
            await ledger.submit(ops.post_bet("a", GAME, 1, "x", 1), 1)
            await ledger.submit(ops.post_bet("b", GAME, 1, "x", 1), 1)
            await asyncio.sleep(0.01)
            return await ledger.get_sequence("a"), await ledger.get_sequence("b")

        assert asyncio.run(scenario()) == (1, 1)

    def test_busy(self):
        """Test busy submissions are refused without consuming a sequence."""
        async def scenario():
            ledger = InMemoryLedger(busy_submissions=1)
            op = ops.post_bet(SIGNER, GAME, 1, "a", 5)
            with pytest.raises(LedgerBusy):
                await ledger.submit(op, 1)
            return await ledger.submit(op, 1)

        assert asyncio.run(scenario()).startswith("tx-")

    def test_unknown_reference(self):
        """Test status of a reference never issued."""
        assert asyncio.run(InMemoryLedger().get_status("tx-404")) == TxStatus.NOT_FOUND


class TestContract:
    """The poker contract's rules."""

    def test_init_hand_takes_blinds(self):
        """Test blinds move from stacks into the pot."""
        async def scenario():
            ledger = InMemoryLedger()
            await apply(ledger, ops.init_hand(SIGNER, GAME, 1, ["alice", "bob"], [1000, 1000], 0, [10, 20]))
            return ledger.hand(GAME, 1)

        contract = asyncio.run(scenario())
        assert contract.stacks == {"alice": 990, "bob": 980}
        assert contract.pot == 30

    def test_double_init_fails(self):
        """Test a hand can only be opened once."""
        async def scenario():
            ledger = InMemoryLedger()
            op = ops.init_hand(SIGNER, GAME, 1, ["alice", "bob"], [1000, 1000])
            await apply(ledger, op)
            return await apply(ledger, op)

        tx = asyncio.run(scenario())
        assert tx.status == TxStatus.FAILED
        assert "already initialized" in tx.error

    def test_fold_pays_opponent(self):
        """Test a fold awards the whole pot once."""
        async def scenario():
            ledger = InMemoryLedger()
            await apply(ledger, ops.init_hand(SIGNER, GAME, 1, ["alice", "bob"], [1000, 1000], 0, [10, 20]))
            await apply(ledger, ops.fold(SIGNER, GAME, 1, "alice"))
            again = await apply(ledger, ops.fold(SIGNER, GAME, 1, "bob"))
            return ledger.hand(GAME, 1), again

        contract, again = asyncio.run(scenario())
        assert contract.resolved
        assert contract.winner == "bob"
        assert contract.stacks == {"alice": 990, "bob": 1010}
        assert again.status == TxStatus.FAILED

    def test_bet_exceeding_stack_fails(self):
        """Test the contract refuses bets it cannot cover."""
        async def scenario():
            ledger = InMemoryLedger()
            await apply(ledger, ops.init_hand(SIGNER, GAME, 1, ["alice", "bob"], [100, 100]))
            return await apply(ledger, ops.post_bet(SIGNER, GAME, 1, "alice", 101))

        assert asyncio.run(scenario()).status == TxStatus.FAILED

    def test_return_excess_moves_chips_back(self):
        """Test uncalled chips leave the pot for the over-committed stack."""
        async def scenario():
            ledger = InMemoryLedger()
            await apply(ledger, ops.init_hand(SIGNER, GAME, 1, ["alice", "bob"], [15, 1000], 0, [10, 20]))
            await apply(ledger, ops.post_bet(SIGNER, GAME, 1, "alice", 5))
            await apply(ledger, ops.return_excess(SIGNER, GAME, 1, "bob", 5))
            return ledger.hand(GAME, 1)

        contract = asyncio.run(scenario())
        assert contract.stacks == {"alice": 0, "bob": 985}
        assert contract.pot == 30

    @pytest.mark.parametrize("amount", [0, 31])
    def test_return_excess_bounded_by_pot(self, amount):
        """Test a return must be positive and no larger than the pot."""
        async def scenario():
            ledger = InMemoryLedger()
            await apply(ledger, ops.init_hand(SIGNER, GAME, 1, ["alice", "bob"], [1000, 1000], 0, [10, 20]))
            return await apply(ledger, ops.return_excess(SIGNER, GAME, 1, "bob", amount))

        assert asyncio.run(scenario()).status == TxStatus.FAILED

    def test_bind_after_reveal_fails(self):
        """Test commitments cannot be bound once the flop is out."""
        async def scenario():
            ledger = InMemoryLedger()
            await apply(ledger, ops.init_hand(SIGNER, GAME, 1, ["alice", "bob"], [100, 100]))
            await apply(ledger, ops.reveal_community_cards(SIGNER, GAME, 1, [0, 1, 2]))
            commitment = ledger_commitment([12, 25], SALTS["alice"])
            return await apply(ledger, ops.bind_commitment(SIGNER, GAME, 1, "alice", commitment.hex()))

        assert asyncio.run(scenario()).status == TxStatus.FAILED

    def test_reveal_must_extend_board(self):
        """Test a reveal cannot rewrite earlier community cards."""
        async def scenario():
            ledger = InMemoryLedger()
            await apply(ledger, ops.init_hand(SIGNER, GAME, 1, ["alice", "bob"], [100, 100]))
            await apply(ledger, ops.reveal_community_cards(SIGNER, GAME, 1, [0, 1, 2]))
            return await apply(ledger, ops.reveal_community_cards(SIGNER, GAME, 1, [0, 1, 3, 4]))

        assert asyncio.run(scenario()).status == TxStatus.FAILED


class TestResolveShowdown:
    """Showdown resolution re-derives commitments and pays once."""

    HOLES = {"alice": "Ah Ad", "bob": "Kc 7d"}
    BOARD = "2s 5h 9c Jd 3s"

    def test_winner_paid(self):
        """Test the stronger claim takes the pot."""
        async def scenario():
            ledger = InMemoryLedger()
            claims = await play_to_river(ledger, self.HOLES, self.BOARD)
            tx = await apply(ledger, ops.resolve_showdown(SIGNER, GAME, 1, claims))
            return ledger.hand(GAME, 1), tx

        contract, tx = asyncio.run(scenario())
        assert tx.status == TxStatus.SUCCESS
        assert contract.winner == "alice"
        assert contract.payouts == {"alice": 40}
        assert contract.stacks == {"alice": 1020, "bob": 980}

    def test_no_double_payout(self):
        """Test a second resolution is refused."""
        async def scenario():
            ledger = InMemoryLedger()
            claims = await play_to_river(ledger, self.HOLES, self.BOARD)
            await apply(ledger, ops.resolve_showdown(SIGNER, GAME, 1, claims))
            again = await apply(ledger, ops.resolve_showdown(SIGNER, GAME, 1, claims))
            return ledger.hand(GAME, 1), again

        contract, again = asyncio.run(scenario())
        assert again.status == TxStatus.FAILED
        assert contract.stacks == {"alice": 1020, "bob": 980}

    def test_wrong_salt_rejected(self):
        """Test a reveal that does not match the bound commitment."""
        async def scenario():
            ledger = InMemoryLedger()
            claims = await play_to_river(ledger, self.HOLES, self.BOARD)
            forged = [replace(claims[0], salt="33" * 32), claims[1]]
            return ledger.hand(GAME, 1), await apply(ledger, ops.resolve_showdown(SIGNER, GAME, 1, forged))

        contract, tx = asyncio.run(scenario())
        assert tx.status == TxStatus.FAILED
        assert "Commitment mismatch" in tx.error
        assert not contract.resolved

    def test_attestation_required(self):
        """Test claims need a recorded, verified attestation of the same rank."""
        async def scenario():
            ledger = InMemoryLedger()
            claims = await play_to_river(ledger, self.HOLES, self.BOARD)
            ledger.attestations["proof-bob"]["verified"] = False
            return await apply(ledger, ops.resolve_showdown(SIGNER, GAME, 1, claims))

        tx = asyncio.run(scenario())
        assert tx.status == TxStatus.FAILED
        assert "attestation" in tx.error

    def test_board_must_be_complete(self):
        """Test resolution before the river is refused."""
        async def scenario():
            ledger = InMemoryLedger()
            await apply(ledger, ops.init_hand(SIGNER, GAME, 1, ["alice", "bob"], [100, 100]))
            return await apply(ledger, ops.resolve_showdown(
                SIGNER, GAME, 1, claims_for(self.HOLES, self.BOARD)
            ))

        assert asyncio.run(scenario()).status == TxStatus.FAILED

    def test_tie_splits_with_odd_chip_left_of_button(self):
        """Test equal claims split and the non-dealer gets the odd chip."""
        holes = {"alice": "2c 3d", "bob": "4c 5d"}
        board = "As Ks Qd Jh Tc"

        async def scenario():
            ledger = InMemoryLedger()
            claims = await play_to_river(ledger, holes, board, blinds=(10, 21), limp=False)
            tx = await apply(ledger, ops.resolve_showdown(SIGNER, GAME, 1, claims))
            return ledger.hand(GAME, 1), tx

        contract, tx = asyncio.run(scenario())
        assert tx.status == TxStatus.SUCCESS
        assert contract.winner is None
        assert contract.payouts == {"alice": 15, "bob": 16}

    def test_tiebreak_decides_same_category(self):
        """Test same rank with a better kicker wins outright."""
        holes = {"alice": "Ac Kd", "bob": "Ah Qd"}
        board = "As 9c 7h 4d 2s"

        async def scenario():
            ledger = InMemoryLedger()
            claims = await play_to_river(ledger, holes, board)
            await apply(ledger, ops.resolve_showdown(SIGNER, GAME, 1, claims))
            return ledger.hand(GAME, 1)

        contract = asyncio.run(scenario())
        assert contract.winner == "alice"
