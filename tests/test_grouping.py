from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from tf_diagram.core.grouping import GroupingOptions, build_groups, claimed_node_ids
from tf_diagram.graph.model import DependencyGraph, GraphEdge, GraphNode
from tf_diagram.mapping import parse_mapping_csv
from tf_diagram.plan.model import ChangeState, parse_plan

TABLE_CSV = (
    "Main Diagram Blocks,Missing Resources,Data Sources,Service Name,Icon Path,Simplified Category,Arguments For Name\n"
    '"aws_instance","aws_security_group,aws_ebs_volume","aws_ami","Amazon EC2","Compute/EC2.svg","Compute","tags.Name"\n'
    '"aws_vpc","aws_internet_gateway,aws_subnet","","Amazon VPC","Networking/VPC.svg","Networking","-"\n'
    '"aws_s3_bucket","aws_s3_bucket_policy","","Amazon S3","Storage/S3.svg","Storage","bucket"\n'
)


def _table():
    return parse_mapping_csv(TABLE_CSV)


def _graph(nodes: Sequence[str], edges: Sequence[Tuple[str, str]] = ()) -> DependencyGraph:
    scope = DependencyGraph(
        name="root",
        nodes=[GraphNode(id=n, label=n) for n in nodes],
        edges=[GraphEdge(source=s, target=t) for s, t in edges],
    )
    return DependencyGraph(subgraphs=[scope])


def _plan(changes: Dict[str, List[str]], after: Optional[Dict[str, dict]] = None):
    after = after or {}
    return parse_plan(
        {
            "resource_changes": [
                {"address": address, "change": {"actions": actions, "after": after.get(address)}}
                for address, actions in changes.items()
            ]
        }
    )


WEB = "n1 aws_instance.web"
SG = "n2 aws_security_group.sg"


def test_instance_absorbs_security_group_with_plan() -> None:
    graph = _graph([WEB, SG], [(WEB, SG)])
    plan = _plan({"aws_instance.web": ["create"]}, after={"aws_instance.web": {"tags": {"Name": "web-1"}}})

    groups = build_groups(graph, _table(), plan)

    assert list(groups) == ["aws_instance.web"]
    group = groups["aws_instance.web"]
    assert group.member_ids() == [WEB, SG]
    assert group.state is ChangeState.CREATE
    assert group.name == "web-1"
    assert group.category == "Compute"
    assert group.service_name == "Amazon EC2"


def test_without_plan_state_is_no_op() -> None:
    graph = _graph([WEB, SG], [(WEB, SG)])

    groups = build_groups(graph, _table())

    group = groups["aws_instance.web"]
    assert group.member_ids() == [WEB, SG]
    assert group.state is ChangeState.NO_OP
    assert group.name == "web"


def test_unmapped_resource_produces_no_group() -> None:
    graph = _graph(["n1 aws_unmapped_thing.x"])
    assert build_groups(graph, _table()) == {}


def test_module_prefix_is_recorded() -> None:
    vpc = "n0 module.vpc.aws_vpc.main"
    subnet = "n1 module.vpc.aws_subnet.this"
    graph = _graph([vpc, subnet], [(subnet, vpc)])

    groups = build_groups(graph, _table())

    group = groups["module.vpc.aws_vpc.main"]
    assert group.module_name == "vpc"
    assert group.module_id == "module.vpc"
    assert subnet in group.member_ids()


def test_absorption_follows_incoming_edges_transitively() -> None:
    sg2 = "n3 aws_security_group.other"
    graph = _graph([WEB, SG, sg2], [(SG, WEB), (sg2, SG)])

    groups = build_groups(graph, _table())

    assert groups["aws_instance.web"].member_ids() == [WEB, SG, sg2]


def test_shared_satellite_joins_one_group_only() -> None:
    api = "n3 aws_instance.api"
    graph = _graph([WEB, api, SG], [(WEB, SG), (api, SG)])

    groups = build_groups(graph, _table())

    assert SG in groups["aws_instance.web"].member_ids()
    assert SG not in groups["aws_instance.api"].member_ids()


def test_main_blocks_are_never_absorbed() -> None:
    api = "n3 aws_instance.api"
    graph = _graph([WEB, api], [(WEB, api)])

    groups = build_groups(graph, _table())

    assert groups["aws_instance.web"].member_ids() == [WEB]
    assert groups["aws_instance.api"].member_ids() == [api]


def test_cycles_terminate() -> None:
    sg2 = "n3 aws_security_group.other"
    graph = _graph([WEB, SG, sg2], [(WEB, SG), (SG, sg2), (sg2, SG), (sg2, WEB)])

    groups = build_groups(graph, _table())

    assert sorted(groups["aws_instance.web"].member_ids()) == sorted([WEB, SG, sg2])


def test_data_sources_are_absorbed_only_when_listed() -> None:
    ami = "n3 data.aws_ami.ubuntu"
    caller = "n4 data.aws_caller_identity.me"
    graph = _graph([WEB, ami, caller], [(WEB, ami), (WEB, caller)])

    groups = build_groups(graph, _table())

    assert groups["aws_instance.web"].member_ids() == [WEB, ami]


def test_nodes_belong_to_at_most_one_group() -> None:
    vpc = "n5 aws_vpc.main"
    igw = "n6 aws_internet_gateway.gw"
    api = "n7 aws_instance.api"
    graph = _graph(
        [WEB, SG, vpc, igw, api],
        [(WEB, SG), (api, SG), (igw, vpc), (SG, vpc), (api, igw)],
    )

    groups = build_groups(graph, _table())

    seen: List[str] = []
    for group in groups.values():
        seen.extend(group.member_ids())
    assert len(seen) == len(set(seen))
    assert claimed_node_ids(groups) == set(seen)


def test_state_fold_over_members() -> None:
    graph = _graph([WEB, SG], [(WEB, SG)])

    created = build_groups(graph, _table(), _plan({"aws_instance.web": ["create"], "aws_security_group.sg": ["no-op"]}))
    assert created["aws_instance.web"].state is ChangeState.CREATE

    mixed = build_groups(graph, _table(), _plan({"aws_instance.web": ["create"], "aws_security_group.sg": ["delete"]}))
    assert mixed["aws_instance.web"].state is ChangeState.UPDATE

    ami = "n3 data.aws_ami.ubuntu"
    graph = _graph([WEB, ami], [(WEB, ami)])
    read = build_groups(graph, _table(), _plan({"aws_instance.web": ["no-op"], "data.aws_ami.ubuntu": ["read"]}))
    assert read["aws_instance.web"].state is ChangeState.READ


def test_indexed_instances_share_the_main_group() -> None:
    graph = _graph([WEB])
    plan = _plan({"aws_instance.web[0]": ["create"], "aws_instance.web[1]": ["create"]})

    group = build_groups(graph, _table(), plan)["aws_instance.web"]

    assert [c.address for c in group.iter_changes()] == ["aws_instance.web[0]", "aws_instance.web[1]"]
    assert group.state is ChangeState.CREATE


def test_detailed_adds_orphan_groups() -> None:
    graph = _graph([WEB, SG, "n3 aws_s3_bucket_policy.p", "n4 var.region"])

    plain = build_groups(graph, _table())
    detailed = build_groups(graph, _table(), options=GroupingOptions(detailed=True))

    assert list(plain) == ["aws_instance.web"]
    assert set(detailed) == {"aws_instance.web", "aws_security_group.sg", "aws_s3_bucket_policy.p"}
    orphan = detailed["aws_security_group.sg"]
    assert orphan.category == "Compute"
    assert orphan.member_ids() == [SG]
    assert detailed["aws_s3_bucket_policy.p"].category == "Storage"


def test_hide_inactive_prunes_unchanged_groups_and_members() -> None:
    bucket = "n3 aws_s3_bucket.logs"
    graph = _graph([WEB, SG, bucket], [(WEB, SG)])
    plan = _plan({"aws_instance.web": ["update"]})

    kept = build_groups(graph, _table(), plan)
    pruned = build_groups(graph, _table(), plan, GroupingOptions(hide_inactive=True))

    assert set(kept) == {"aws_instance.web", "aws_s3_bucket.logs"}
    assert list(pruned) == ["aws_instance.web"]
    assert pruned["aws_instance.web"].member_ids() == [WEB]


def test_hide_inactive_without_plan_keeps_everything() -> None:
    graph = _graph([WEB, SG], [(WEB, SG)])

    groups = build_groups(graph, _table(), options=GroupingOptions(hide_inactive=True))

    assert groups["aws_instance.web"].member_ids() == [WEB, SG]


def test_grouping_is_repeatable() -> None:
    graph = _graph([WEB, SG, "n3 aws_instance.api"], [(WEB, SG)])
    plan = _plan({"aws_instance.web": ["create"]})

    first = build_groups(graph, _table(), plan)
    second = build_groups(graph, _table(), plan)

    assert [g.to_dict() for g in first.values()] == [g.to_dict() for g in second.values()]


def test_to_dict_shape() -> None:
    graph = _graph([WEB, SG], [(WEB, SG)])
    payload = build_groups(graph, _table())["aws_instance.web"].to_dict()

    assert payload["mainNode"] == WEB
    assert payload["type"] == "aws_instance"
    assert payload["moduleName"] is None
    assert [n["id"] for n in payload["nodes"]] == [WEB, SG]
    assert payload["nodes"][0]["resourceChanges"] == []


def test_members_follow_depth_first_order() -> None:
    sg_db = "n3 aws_security_group.db"
    volume = "n4 aws_ebs_volume.data"
    graph = _graph([WEB, SG, sg_db, volume], [(WEB, SG), (WEB, sg_db), (SG, volume)])

    group = build_groups(graph, _table())["aws_instance.web"]

    # the volume hangs off the first security group, so it precedes the second one
    assert group.member_ids() == [WEB, SG, volume, sg_db]


def test_absorbed_node_keeps_its_direction_first() -> None:
    volume = "n3 aws_ebs_volume.data"
    shared = "n4 aws_security_group.shared"
    graph = _graph([WEB, SG, volume, shared], [(WEB, SG), (shared, SG), (SG, volume)])

    group = build_groups(graph, _table())["aws_instance.web"]

    assert group.member_ids() == [WEB, SG, volume, shared]


def test_detailed_orphan_from_satellite_only_row() -> None:
    table = parse_mapping_csv(
        TABLE_CSV + '"","aws_iam_role","","AWS IAM","Security/IAM.svg","Security",""\n'
    )
    role = "n3 aws_iam_role.app"
    graph = _graph([WEB, role], [(WEB, role)])

    groups = build_groups(graph, table, options=GroupingOptions(detailed=True))

    assert groups["aws_iam_role.app"].category == "Security"
    assert groups["aws_instance.web"].member_ids() == [WEB]
