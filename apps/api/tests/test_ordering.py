from __future__ import annotations

import random
from dataclasses import dataclass

import pytest

from tracker import ordering
from tracker.errors import InternalConsistencyError


@dataclass
class Rec:
  id: str
  task_state_id: str | None = None
  left_task_id: str | None = None
  right_task_id: str | None = None


def make_chain(bucket_id: str, ids: list[str]) -> ordering.Chain:
  chain = ordering.Chain(bucket_id=bucket_id)
  for i in ids:
    ordering.append(chain, Rec(id=i))
  return chain


def order(chain: ordering.Chain) -> list[str]:
  return [t.id for t in ordering.verify(chain)]


def test_append_builds_chain_in_creation_order() -> None:
  chain = make_chain("s1", ["a", "b", "c"])
  assert order(chain) == ["a", "b", "c"]
  assert ordering.current_head(chain).id == "a"
  assert ordering.current_tail(chain).id == "c"
  a, b, c = (chain.tasks[i] for i in "abc")
  assert (a.left_task_id, a.right_task_id) == (None, "b")
  assert (b.left_task_id, b.right_task_id) == ("a", "c")
  assert (c.left_task_id, c.right_task_id) == ("b", None)
  assert all(t.task_state_id == "s1" for t in chain.tasks.values())


def test_single_task_is_head_and_tail() -> None:
  chain = make_chain("s1", ["only"])
  t = chain.tasks["only"]
  assert t.left_task_id is None and t.right_task_id is None
  assert ordering.current_head(chain) is t
  assert ordering.current_tail(chain) is t


def test_empty_chain_has_no_head_or_tail() -> None:
  chain = ordering.Chain(bucket_id="s1")
  assert ordering.current_head(chain) is None
  assert ordering.current_tail(chain) is None
  assert ordering.verify(chain) == []


def test_insert_without_anchor_becomes_head() -> None:
  chain = make_chain("s1", ["a", "b"])
  mutated = ordering.insert_after(chain, Rec(id="x"), None)
  assert order(chain) == ["x", "a", "b"]
  assert {t.id for t in mutated} == {"x", "a"}


def test_insert_after_anchor_in_middle_returns_three_records() -> None:
  chain = make_chain("s1", ["a", "b"])
  mutated = ordering.insert_after(chain, Rec(id="x"), chain.tasks["a"])
  assert order(chain) == ["a", "x", "b"]
  assert [t.id for t in mutated] == ["x", "a", "b"]


def test_detach_middle_joins_neighbors() -> None:
  chain = make_chain("s1", ["a", "b", "c"])
  b = chain.tasks["b"]
  mutated = ordering.detach(chain, b)
  assert {t.id for t in mutated} == {"a", "c"}
  assert (b.left_task_id, b.right_task_id) == (None, None)
  assert "b" not in chain
  assert order(chain) == ["a", "c"]
  assert chain.tasks["a"].right_task_id == "c"
  assert chain.tasks["c"].left_task_id == "a"


def test_detach_head_and_tail() -> None:
  chain = make_chain("s1", ["a", "b", "c"])
  ordering.detach(chain, chain.tasks["a"])
  assert order(chain) == ["b", "c"]
  ordering.detach(chain, chain.tasks["c"])
  assert order(chain) == ["b"]
  assert ordering.detach(chain, chain.tasks["b"]) == []
  assert len(chain) == 0


def test_detach_rejects_asymmetric_links() -> None:
  chain = make_chain("s1", ["a", "b"])
  chain.tasks["a"].right_task_id = None
  with pytest.raises(InternalConsistencyError):
    ordering.detach(chain, chain.tasks["b"])


def test_insert_requires_detached_task() -> None:
  chain = make_chain("s1", ["a", "b"])
  with pytest.raises(InternalConsistencyError):
    ordering.insert_after(chain, chain.tasks["b"], None)
  with pytest.raises(InternalConsistencyError):
    ordering.insert_after(chain, Rec(id="x", left_task_id="a"), None)


def test_insert_rejects_anchor_from_another_chain() -> None:
  chain = make_chain("s1", ["a"])
  other = make_chain("s2", ["z"])
  with pytest.raises(InternalConsistencyError):
    ordering.insert_after(chain, Rec(id="x"), other.tasks["z"])


def test_two_heads_is_an_invariant_violation() -> None:
  chain = ordering.build_chain("s1", [Rec(id="a", task_state_id="s1"), Rec(id="b", task_state_id="s1")])
  with pytest.raises(InternalConsistencyError):
    ordering.current_head(chain)
  with pytest.raises(InternalConsistencyError):
    ordering.append(chain, Rec(id="c"))


def test_walk_detects_cycle() -> None:
  chain = make_chain("s1", ["a", "b", "c", "d"])
  # b <-> c <-> d loop back to b while a stays the single head
  chain.tasks["d"].right_task_id = "b"
  with pytest.raises(InternalConsistencyError):
    ordering.walk(chain)


def test_verify_rejects_link_to_other_bucket() -> None:
  chain = make_chain("s1", ["a", "b"])
  chain.tasks["b"].right_task_id = "elsewhere"
  with pytest.raises(InternalConsistencyError):
    ordering.verify(chain)


def test_verify_rejects_member_of_other_bucket() -> None:
  chain = make_chain("s1", ["a", "b"])
  chain.tasks["b"].task_state_id = "s2"
  with pytest.raises(InternalConsistencyError):
    ordering.verify(chain)


def test_random_splices_keep_invariants() -> None:
  rng = random.Random(20261018)
  chains = {"s1": ordering.Chain(bucket_id="s1"), "s2": ordering.Chain(bucket_id="s2")}
  model: dict[str, list[str]] = {"s1": [], "s2": []}
  records: dict[str, Rec] = {}
  bucket_of: dict[str, str] = {}

  for step in range(400):
    op = rng.choice(["create", "reposition", "move", "delete"])
    if op == "create" or not records:
      bucket = rng.choice(["s1", "s2"])
      rec = Rec(id=f"t{step}")
      ordering.append(chains[bucket], rec)
      records[rec.id] = rec
      bucket_of[rec.id] = bucket
      model[bucket].append(rec.id)
    else:
      tid = rng.choice(sorted(records))
      bucket = bucket_of[tid]
      rec = records[tid]
      if op == "reposition":
        others = [i for i in model[bucket] if i != tid]
        left = rng.choice([None, *others])
        ordering.detach(chains[bucket], rec)
        ordering.insert_after(chains[bucket], rec, chains[bucket].tasks[left] if left else None)
        model[bucket].remove(tid)
        model[bucket].insert(model[bucket].index(left) + 1 if left else 0, tid)
      elif op == "move":
        target = "s2" if bucket == "s1" else "s1"
        ordering.detach(chains[bucket], rec)
        ordering.append(chains[target], rec)
        model[bucket].remove(tid)
        model[target].append(tid)
        bucket_of[tid] = target
      else:
        ordering.detach(chains[bucket], rec)
        model[bucket].remove(tid)
        del records[tid]
        del bucket_of[tid]

    for b, chain in chains.items():
      assert order(chain) == model[b]
