import pytest
from hypothesis import given
from hypothesis import strategies as st

from jobbridge.core.errors import ConfigurationError
from jobbridge.core.resolver import find_job
from jobbridge.core.status import translate_build_status
from jobbridge.models.pipeline import HostStatus
from tests.support.host_helpers import graph, job, pipeline


_STATUS_VALUES = {member.value for member in HostStatus}


@given(st.one_of(st.sampled_from(sorted(_STATUS_VALUES)), st.text()))
def test_host_status_parse_accepts_members_only(value: str) -> None:
    if value in _STATUS_VALUES:
        assert HostStatus.parse(value).value == value
    else:
        with pytest.raises(ConfigurationError):
            HostStatus.parse(value)


@given(st.text().filter(lambda value: value not in {"0", "1"}))
def test_translate_is_pending_for_every_other_code(outcome: str) -> None:
    assert translate_build_status(outcome) is HostStatus.PENDING


@given(
    st.lists(
        st.lists(st.sampled_from(["build", "test-job", "deploy", "Deploy"]), max_size=4),
        max_size=4,
    ),
    st.sampled_from(["build", "test-job", "deploy"]),
)
def test_find_job_returns_first_match_in_graph_order(layout: list[list[str]], name: str) -> None:
    counter = iter(range(1, 1000))
    pipeline_graph = graph(
        *(
            pipeline(100 + index, *(job(job_name, next(counter)) for job_name in names))
            for index, names in enumerate(layout)
        )
    )
    expected = next(
        ((pipe, candidate) for pipe, candidate in pipeline_graph.iter_jobs() if candidate.name == name),
        None,
    )

    first = find_job(pipeline_graph, name)
    assert first == find_job(pipeline_graph, name)
    if expected is None:
        assert first is None
    else:
        assert first is not None
        assert first.job_id == expected[1].id
        assert first.pipeline_id == expected[0].id
