"""
Linked ordering of tasks inside a task state.

Each task stores the ids of its left and right neighbors. A task state's
members, loaded into a `Chain` arena keyed by id, form one doubly-linked list:

- links are symmetric (A.right == B exactly when B.left == A)
- exactly one head (no left) and one tail (no right) when non-empty
- links never leave the chain, and walking right from the head visits
  every member exactly once

Everything here is pure: records are mutated in memory and returned to the
caller, which persists them. Records only need `id`, `task_state_id`,
`left_task_id` and `right_task_id` attributes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from tracker.errors import InternalConsistencyError


@dataclass
class Chain:
  bucket_id: str
  tasks: dict[str, Any] = field(default_factory=dict)

  def __len__(self) -> int:
    return len(self.tasks)

  def __contains__(self, task_id: object) -> bool:
    return task_id in self.tasks


def build_chain(bucket_id: str, tasks: Iterable[Any]) -> Chain:
  return Chain(bucket_id=bucket_id, tasks={t.id: t for t in tasks})


def _neighbor(chain: Chain, task_id: str) -> Any:
  t = chain.tasks.get(task_id)
  if t is None:
    raise InternalConsistencyError(f"Task {task_id} is linked from task state {chain.bucket_id} but is not a member of it")
  return t


def _single_end(chain: Chain, attr: str, label: str) -> Any | None:
  if not chain.tasks:
    return None
  found = [t for t in chain.tasks.values() if getattr(t, attr) is None]
  if len(found) != 1:
    raise InternalConsistencyError(f"Task state {chain.bucket_id} has {len(found)} {label} candidates")
  return found[0]


def current_head(chain: Chain) -> Any | None:
  return _single_end(chain, "left_task_id", "head")


def current_tail(chain: Chain) -> Any | None:
  return _single_end(chain, "right_task_id", "tail")


def detach(chain: Chain, task: Any) -> list[Any]:
  """
  Splice `task` out of `chain`, joining its former neighbors.

  The task leaves the arena with both links cleared. Returns the neighbors
  that were mutated (zero, one or two records).
  """
  if task.id not in chain.tasks:
    raise InternalConsistencyError(f"Task {task.id} is not a member of task state {chain.bucket_id}")

  left = _neighbor(chain, task.left_task_id) if task.left_task_id is not None else None
  right = _neighbor(chain, task.right_task_id) if task.right_task_id is not None else None
  if left is not None and left.right_task_id != task.id:
    raise InternalConsistencyError(f"Task {left.id} does not link back to its right neighbor {task.id}")
  if right is not None and right.left_task_id != task.id:
    raise InternalConsistencyError(f"Task {right.id} does not link back to its left neighbor {task.id}")

  mutated: list[Any] = []
  if left is not None:
    left.right_task_id = task.right_task_id
    mutated.append(left)
  if right is not None:
    right.left_task_id = task.left_task_id
    mutated.append(right)
  task.left_task_id = None
  task.right_task_id = None
  del chain.tasks[task.id]
  return mutated


def insert_after(chain: Chain, task: Any, anchor: Any | None = None) -> list[Any]:
  """
  Place a detached `task` right after `anchor`, or at the head when `anchor` is None.

  No anchor always means "new head"; appending goes through `append`.
  Returns every mutated record: the task, the anchor and the old right
  neighbor when present.
  """
  if task.left_task_id is not None or task.right_task_id is not None or task.id in chain.tasks:
    raise InternalConsistencyError(f"Task {task.id} must be detached before it is inserted")

  if anchor is not None:
    anchor = _neighbor(chain, anchor.id)
    right = _neighbor(chain, anchor.right_task_id) if anchor.right_task_id is not None else None
  else:
    right = current_head(chain)

  task.left_task_id = anchor.id if anchor is not None else None
  task.right_task_id = right.id if right is not None else None
  task.task_state_id = chain.bucket_id
  mutated: list[Any] = [task]
  if anchor is not None:
    anchor.right_task_id = task.id
    mutated.append(anchor)
  if right is not None:
    right.left_task_id = task.id
    mutated.append(right)
  chain.tasks[task.id] = task
  return mutated


def append(chain: Chain, task: Any) -> list[Any]:
  return insert_after(chain, task, current_tail(chain))


def walk(chain: Chain) -> list[Any]:
  """Members in list order, head first. Fails on cycles and unreachable members."""
  ordered: list[Any] = []
  seen: set[str] = set()
  node = current_head(chain)
  while node is not None:
    if node.id in seen or len(ordered) >= len(chain.tasks):
      raise InternalConsistencyError(f"Task state {chain.bucket_id} contains a cycle at task {node.id}")
    seen.add(node.id)
    ordered.append(node)
    node = _neighbor(chain, node.right_task_id) if node.right_task_id is not None else None
  if len(ordered) != len(chain.tasks):
    raise InternalConsistencyError(
      f"Task state {chain.bucket_id} has {len(chain.tasks) - len(ordered)} tasks unreachable from its head"
    )
  return ordered


def verify(chain: Chain) -> list[Any]:
  """Check every chain invariant and return the members in order."""
  for t in chain.tasks.values():
    if t.task_state_id != chain.bucket_id:
      raise InternalConsistencyError(f"Task {t.id} is in the chain of task state {chain.bucket_id} but belongs to {t.task_state_id}")
    if t.left_task_id is not None and _neighbor(chain, t.left_task_id).right_task_id != t.id:
      raise InternalConsistencyError(f"Left link of task {t.id} is not symmetric")
    if t.right_task_id is not None and _neighbor(chain, t.right_task_id).left_task_id != t.id:
      raise InternalConsistencyError(f"Right link of task {t.id} is not symmetric")
  current_tail(chain)
  return walk(chain)
