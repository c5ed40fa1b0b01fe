from __future__ import annotations

from statemachine import State, StateMachine


class PlayerFSM(StateMachine):
    """Lifecycle of one module player.

    - loading -> rendering_step once the module snapshot is fetched.
    - rendering_step -> awaiting_advance on completion or Next; the current
      step is torn down there, then either the next step renders or the
      module completes.
    - Back re-renders the previous step in place (`retreat`); Back from the
      first step or navigating away ends in `exited`.
    """

    loading = State("Loading", value="loading", initial=True)
    rendering_step = State("Rendering step", value="rendering_step")
    awaiting_advance = State("Awaiting advance", value="awaiting_advance")
    complete = State("Complete", value="complete", final=True)
    failed = State("Failed", value="failed", final=True)
    exited = State("Exited", value="exited", final=True)

    loaded = loading.to(rendering_step)
    load_failed = loading.to(failed)
    step_finished = rendering_step.to(awaiting_advance)
    advance = awaiting_advance.to(rendering_step)
    finish = awaiting_advance.to(complete)
    retreat = rendering_step.to(rendering_step)
    leave = loading.to(exited) | rendering_step.to(exited) | awaiting_advance.to(exited)

    @property
    def state_id(self) -> str:
        return str(self.current_state.id)

    @property
    def closed(self) -> bool:
        return bool(self.current_state.final)
