# tests/release/test_release_descriptor.py
"""
Testes do release descriptor e do hook pós-build que o entrega.

Os testes asseguram que:
- namespaces e instâncias são normalizados (ordenados, sem repetição)
- o fingerprint independe da ordem em que os dados foram informados
- descriptors inválidos falham antes do notifier ser chamado
- o hook roda uma única vez por run e expõe o descriptor no resultado
"""

import pytest

from atlas_ci.core.engine.engine import PipelineOrchestrator
from atlas_ci.core.pipeline.types import TaskHistory
from atlas_ci.persistence.memory import InMemoryBuildCommandOverrideStore
from atlas_ci.release import ReleaseDescriptor, ReleaseInstance, ReleaseMeta, ReleasingPostBuildHook
from tests.fixtures.collaborators import CollectingReleaseNotifier

META = ReleaseMeta(history_id=1, version_id="v1")


def test_namespaces_and_instances_are_canonical():
    d = ReleaseDescriptor(
        cluster="prod",
        meta=META,
        namespaces=[" web ", "api", "web", ""],
        instances=[ReleaseInstance("b", 80), ReleaseInstance("a", 8080), ReleaseInstance("b", 80)],
    )
    assert d.namespaces == ("api", "web")
    assert d.instances == (ReleaseInstance("a", 8080), ReleaseInstance("b", 80))
    assert d.to_dict() == {
        "cluster": "prod",
        "namespaces": ["api", "web"],
        "meta": {"history_id": 1, "version_id": "v1"},
        "instances": [{"host": "a", "port": 8080}, {"host": "b", "port": 80}],
    }


def test_fingerprint_is_order_independent():
    a = ReleaseDescriptor("prod", META, ("x", "y"), (ReleaseInstance("h1", 1), ReleaseInstance("h2", 2)))
    b = ReleaseDescriptor("prod", META, ("y", "x", "x"), (ReleaseInstance("h2", 2), ReleaseInstance("h1", 1)))
    c = ReleaseDescriptor("stage", META, ("x", "y"), (ReleaseInstance("h1", 1), ReleaseInstance("h2", 2)))
    assert a.fingerprint() == b.fingerprint()
    assert a.fingerprint() != c.fingerprint()
    assert len(a.fingerprint()) == 64


@pytest.mark.parametrize(
    "descriptor",
    [
        ReleaseDescriptor(" ", META),
        ReleaseDescriptor("prod", ReleaseMeta(1, "")),
        ReleaseDescriptor("prod", META, instances=[ReleaseInstance("h", 0)]),
        ReleaseDescriptor("prod", META, instances=[ReleaseInstance("", 80)]),
        ReleaseDescriptor("prod", META, instances=[ReleaseInstance("h", 70000)]),
    ],
)
def test_invalid_descriptor_fails_validation(descriptor):
    with pytest.raises(ValueError):
        descriptor.validate()


def test_hook_from_config_rejects_invalid_descriptor_before_notifying(make_ctx):
    notifier = CollectingReleaseNotifier()
    hook = ReleasingPostBuildHook.from_config({"release": {"cluster": ""}}, notifier=notifier)
    with pytest.raises(ValueError):
        hook(make_ctx(TaskHistory(id=3, project_id=1, branch_name="main")))
    assert notifier.descriptors == []


def test_hook_runs_once_per_pipeline_and_exposes_descriptor(coordinator, dependency_resolver, build_config):
    build_config["release"] = {
        "cluster": "prod",
        "namespaces": ["web", "api"],
        "instances": [{"host": "10.0.0.2", "port": 8080}, {"host": "10.0.0.1", "port": 8080}],
    }
    notifier = CollectingReleaseNotifier()
    orchestrator = PipelineOrchestrator(
        coordinator=coordinator,
        dependency_resolver=dependency_resolver,
        overrides=InMemoryBuildCommandOverrideStore(),
        config=build_config,
        config_hash="0123456789abcdef",
        post_build_hook=ReleasingPostBuildHook.from_config(build_config, notifier=notifier),
        atlas_version="test",
    )

    result = orchestrator.run_pipeline(TaskHistory(id=4, project_id=1, branch_name="main"))

    (descriptor,) = notifier.descriptors
    assert result.release is descriptor
    assert descriptor.meta == ReleaseMeta(history_id=4, version_id="0123456789ab")
    assert descriptor.namespaces == ("api", "web")
    assert [i.host for i in descriptor.instances] == ["10.0.0.1", "10.0.0.2"]
    assert result.to_dict()["release"]["cluster"] == "prod"

    events = orchestrator.last_context.manifest.events
    prepared = [e for e in events if e["event_type"] == "release_prepared"]
    assert len(prepared) == 1
    assert prepared[0]["payload"]["fingerprint"] == descriptor.fingerprint()
    # o release é preparado depois de todas as arestas
    assert events.index(prepared[0]) > max(
        i for i, e in enumerate(events) if e["event_type"] == "edge_finished"
    )


def test_custom_version_factory(make_ctx):
    notifier = CollectingReleaseNotifier()
    hook = ReleasingPostBuildHook(
        notifier=notifier, cluster="prod", version_factory=lambda ctx: f"build-{ctx.task_history.id}"
    )
    hook(make_ctx(TaskHistory(id=5, project_id=1, branch_name="main")))
    assert notifier.descriptors[0].meta.version_id == "build-5"
