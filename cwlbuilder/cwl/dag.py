from __future__ import annotations

import graphviz

from cwlbuilder.cwl.workflow import Workflow


def to_dot(workflow: Workflow, title: str | None = None) -> graphviz.Digraph:
    """Draw the step graph of ``workflow``: steps as ellipses, workflow ports as boxes."""
    dot = graphviz.Digraph(title or workflow.id or "workflow")
    dot.attr(rankdir="TB")
    for param in workflow.inputs:
        dot.node(f"input/{param.id}", label=param.id, shape="box")
    for step in workflow:
        dot.node(f"step/{step.id}", label=step.label or step.id, shape="ellipse")
        for key, step_input in step.in_.items():
            for source in step_input.sources:
                if "/" in source:
                    step_id, _, output_id = source.partition("/")
                    dot.edge(
                        f"step/{step_id}",
                        f"step/{step.id}",
                        label=f"{output_id} -> {key}",
                    )
                else:
                    dot.edge(f"input/{source}", f"step/{step.id}", label=key)
    for param in workflow.outputs:
        dot.node(f"output/{param.id}", label=param.id, shape="box")
        for source in param.sources:
            step_id, _, output_id = source.partition("/")
            dot.edge(f"step/{step_id}", f"output/{param.id}", label=output_id)
    return dot
