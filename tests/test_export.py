from __future__ import annotations

import json
from typing import Sequence, Tuple

from tf_diagram.core.pipeline import resolve
from tf_diagram.export.groups import GROUPS_FILENAME, resolution_payload, write_groups
from tf_diagram.export.mermaid import _mermaid_id, render_mermaid, write_mermaid
from tf_diagram.graph.model import DependencyGraph, GraphEdge, GraphNode
from tf_diagram.mapping import parse_mapping_csv
from tf_diagram.plan.model import parse_plan

TABLE_CSV = (
    "Main Diagram Blocks,Missing Resources,Data Sources,Service Name,Icon Path,Simplified Category,Arguments For Name\n"
    '"aws_instance","aws_security_group","","Amazon EC2","Compute/EC2.svg","Compute","tags.Name"\n'
    '"aws_vpc","aws_subnet","","Amazon VPC","Networking/VPC.svg","Networking","-"\n'
    '"aws_db_instance","","","Amazon RDS","Database/RDS.svg","Database","identifier"\n'
)


def _graph(nodes: Sequence[str], edges: Sequence[Tuple[str, str]] = ()) -> DependencyGraph:
    scope = DependencyGraph(
        name="root",
        nodes=[GraphNode(id=n, label=n) for n in nodes],
        edges=[GraphEdge(source=s, target=t) for s, t in edges],
    )
    return DependencyGraph(subgraphs=[scope])


def _resolution(with_plan: bool = True):
    web = "n1 aws_instance.web"
    vpc = "n2 module.net.aws_vpc.main"
    db = "n3 aws_db_instance.db"
    plan = None
    if with_plan:
        plan = parse_plan(
            {
                "resource_changes": [
                    {
                        "address": "aws_instance.web",
                        "change": {"actions": ["create"], "after": {"tags": {"Name": "web-1"}, "user_data": "#!/bin/sh"}},
                    },
                    {"address": "aws_db_instance.db", "change": {"actions": ["delete", "create"], "after": {}}},
                ]
            }
        )
    return resolve(_graph([web, vpc, db], [(web, vpc), (web, db)]), parse_mapping_csv(TABLE_CSV), plan)


def test_write_groups_is_sorted_and_redacted(tmp_path) -> None:
    path = write_groups(tmp_path / "out", _resolution())

    assert path.name == GROUPS_FILENAME
    data = json.loads(path.read_text(encoding="utf-8"))
    assert [g["id"] for g in data["groups"]] == ["aws_instance.web", "module.net.aws_vpc.main", "aws_db_instance.db"]
    web = data["groups"][0]
    assert web["name"] == "web-1"
    assert web["state"] == "create"
    assert web["connectionsOut"] == ["module.net.aws_vpc.main", "aws_db_instance.db"]
    assert web["nodes"][0]["resourceChanges"][0]["change"]["after"]["user_data"] == "<redacted>"
    assert data["modules"] == [{"id": "module.net", "name": "net", "parent": None}]
    assert data["hasPlan"] is True


def test_resolution_payload_lists_categories() -> None:
    payload = resolution_payload(_resolution(with_plan=False))
    assert payload["categories"] == ["Compute", "Database", "Networking"]
    assert payload["hasPlan"] is False


def test_mermaid_flowchart(tmp_path) -> None:
    resolution = _resolution()
    text = render_mermaid(resolution.groups, resolution.modules, has_plan=resolution.has_plan)

    web_id = _mermaid_id("aws_instance.web")
    vpc_id = _mermaid_id("module.net.aws_vpc.main")
    db_id = _mermaid_id("aws_db_instance.db")
    assert text.startswith("flowchart TB")
    assert f'{web_id}["web-1<br>Instance"]' in text
    assert f"class {web_id} create" in text
    assert f"class {db_id} replace" in text
    assert f"class {vpc_id} inactive" in text
    assert f'subgraph {_mermaid_id("module.net")}["module.net"]' in text
    assert f"{web_id} --> {vpc_id}" in text
    assert f"{web_id} --> {db_id}" in text

    path = write_mermaid(tmp_path, resolution.groups, resolution.modules, has_plan=True)
    assert path.read_text(encoding="utf-8") == text


def test_mermaid_without_plan_has_no_state_classes() -> None:
    resolution = _resolution(with_plan=False)
    text = render_mermaid(resolution.groups, resolution.modules)

    assert "class N" not in text


def test_mermaid_ids_are_stable() -> None:
    assert _mermaid_id("aws_instance.web") == _mermaid_id("aws_instance.web")
    assert _mermaid_id("aws_instance.web") != _mermaid_id("aws_instance.api")
    assert len(_mermaid_id("aws_instance.web")) == 13
