"""Tests for the agent tree, LlmAgent, and the workflow agents."""

from __future__ import annotations

import threading

import pytest

from strand.agents.graph import NODE_EXECUTION_ERROR, GraphAgent, GraphNode
from strand.agents.invocation_context import InvocationContext, new_invocation_id
from strand.agents.llm_agent import LlmAgent
from strand.agents.loop import LoopAgent
from strand.agents.parallel import ParallelAgent
from strand.agents.sequential import SequentialAgent
from strand.exceptions import (
    AgentAttachError,
    GraphDefinitionError,
    InvalidAgentNameError,
    LlmCallsLimitExceededError,
    ModelNotFoundError,
)
from strand.flows.auth import CredentialRequestState, credential_request_state
from strand.flows.functions import REQUEST_CREDENTIAL
from strand.llm.registry import ModelRegistry
from strand.models.auth import AuthConfig
from strand.models.config import RunConfig
from strand.models.content import Content, Part
from strand.sessions.in_memory import InMemorySessionService
from strand.tools.builtins import exit_loop
from strand.tools.context import ToolContext
from tests.conftest import (
    ScriptedLlm,
    call,
    load_session,
    make_runner,
    make_tool_context,
    run_turn,
    text,
    texts_of,
)


def add(a: int, b: int) -> int:
    """Add two integers."""
    return a + b


WEATHER_AUTH = AuthConfig(auth_scheme="api_key", raw_credential={"service": "weather"})


def fetch_weather(city: str, tool_context: ToolContext) -> dict:
    """Look up the weather for a city."""
    credential = tool_context.get_credential(WEATHER_AUTH)
    if credential is None:
        tool_context.request_credential(WEATHER_AUTH)
        return {"status": "pending"}
    return {"city": city, "token": credential["token"]}


def model_down(request):
    raise ValueError("model unavailable")


def _context(agent) -> InvocationContext:
    service = InMemorySessionService()
    session = service.create_session(app_name="app", user_id="u1")
    return InvocationContext(
        session_service=service,
        invocation_id=new_invocation_id(),
        agent=agent,
        session=session,
    )


# ===========================================================================
# Tree
# ===========================================================================


class TestAgentTree:
    def test_parent_links(self):
        leaf = LlmAgent(name="leaf", model="m")
        mid = SequentialAgent(name="mid", sub_agents=[leaf])
        root = SequentialAgent(name="root", sub_agents=[mid])
        assert leaf.parent_agent is mid
        assert leaf.root_agent is root
        assert root.parent_agent is None

    def test_find_agent(self):
        leaf = LlmAgent(name="leaf", model="m")
        root = SequentialAgent(name="root", sub_agents=[SequentialAgent(name="mid", sub_agents=[leaf])])
        assert root.find_agent("leaf") is leaf
        assert root.find_agent("root") is root
        assert root.find_sub_agent("root") is None
        assert root.find_agent("ghost") is None

    @pytest.mark.parametrize("name", ["", "user", "has space", "1st", "a-b"])
    def test_invalid_names(self, name):
        with pytest.raises(InvalidAgentNameError):
            SequentialAgent(name=name)

    def test_duplicate_name_in_tree(self):
        with pytest.raises(InvalidAgentNameError):
            SequentialAgent(
                name="root",
                sub_agents=[
                    SequentialAgent(name="a", sub_agents=[LlmAgent(name="x", model="m")]),
                    LlmAgent(name="x", model="m"),
                ],
            )

    def test_child_reuses_parent_name(self):
        with pytest.raises(InvalidAgentNameError):
            SequentialAgent(name="root", sub_agents=[LlmAgent(name="root", model="m")])

    def test_reattach_rejected(self):
        child = LlmAgent(name="child", model="m")
        first = SequentialAgent(name="first", sub_agents=[child])
        with pytest.raises(AgentAttachError):
            SequentialAgent(name="second", sub_agents=[child])
        assert child.parent_agent is first


# ===========================================================================
# LlmAgent
# ===========================================================================


class TestLlmAgent:
    def test_plain_reply(self):
        runner = make_runner(LlmAgent(name="bot", model=ScriptedLlm([text("hello")])))
        events = run_turn(runner, "hi")
        assert texts_of(events) == ["hello"]
        assert events[0].author == "bot"
        stored = load_session(runner).events
        assert [e.author for e in stored] == ["user", "bot"]
        assert stored[0].invocation_id == stored[1].invocation_id

    def test_tool_round_trip(self):
        llm = ScriptedLlm([call("add", a=2, b=3), text("2 + 3 = 5")])
        runner = make_runner(LlmAgent(name="calc", model=llm, tools=[add]))

        events = run_turn(runner, "what is 2 + 3?")

        assert len(events) == 3
        function_call = events[0].get_function_calls()[0]
        response = events[1].get_function_responses()[0]
        assert function_call.name == "add"
        assert response.id == function_call.id
        assert response.response == {"result": 5}
        assert events[2].content.text == "2 + 3 = 5"
        assert events[2].is_final_response()
        assert len(llm.requests) == 2

    def test_output_key(self):
        agent = LlmAgent(name="bot", model=ScriptedLlm([text("draft one")]), output_key="draft")
        runner = make_runner(agent)
        events = run_turn(runner, "write")
        assert events[-1].actions.state_delta == {"draft": "draft one"}
        assert load_session(runner).state["draft"] == "draft one"

    def test_model_inherited_from_ancestor(self):
        llm = ScriptedLlm()
        child = LlmAgent(name="child")
        root = LlmAgent(name="root", model=llm, sub_agents=[child])
        ctx = make_tool_context(root).invocation_context.for_agent(child)
        assert child.canonical_model(ctx) is llm

    def test_model_resolved_by_name(self):
        llm = ScriptedLlm([text("named")], model="scripted-large")
        registry = ModelRegistry()
        registry.register_instance(llm)
        runner = make_runner(LlmAgent(name="bot", model="scripted-large"), model_registry=registry)
        assert texts_of(run_turn(runner, "hi")) == ["named"]

    def test_missing_model(self):
        runner = make_runner(LlmAgent(name="bot"))
        with pytest.raises(ModelNotFoundError):
            run_turn(runner, "hi")

    def test_unregistered_model_name(self):
        runner = make_runner(LlmAgent(name="bot", model="nobody-serves-this"))
        with pytest.raises(ModelNotFoundError):
            run_turn(runner, "hi")

    def test_unsupported_tool_type(self):
        agent = LlmAgent(name="bot", model="m", tools=[42])
        with pytest.raises(TypeError):
            agent.canonical_tools()

    def test_plain_functions_wrapped_once(self):
        agent = LlmAgent(name="bot", model="m", tools=[add])
        assert agent.canonical_tools()[0] is agent.canonical_tools()[0]


class TestAgentCallbacks:
    def test_before_agent_reply_skips_agent(self):
        llm = ScriptedLlm()
        agent = LlmAgent(
            name="bot",
            model=llm,
            before_agent_callbacks=[lambda cc: Content.model("closed today")],
        )
        events = run_turn(make_runner(agent), "hi")
        assert texts_of(events) == ["closed today"]
        assert llm.requests == []

    def test_before_agent_state_only(self):
        def stamp(callback_context):
            callback_context.state["visits"] = callback_context.state.get("visits", 0) + 1
            return None

        agent = LlmAgent(name="bot", model=ScriptedLlm([text("hello")]), before_agent_callbacks=[stamp])
        runner = make_runner(agent)
        events = run_turn(runner, "hi")
        assert events[0].content is None
        assert events[0].actions.state_delta == {"visits": 1}
        assert texts_of(events) == ["hello"]
        assert load_session(runner).state["visits"] == 1

    def test_before_agent_skips_only_that_agent(self):
        first = LlmAgent(
            name="first",
            model=ScriptedLlm(),
            before_agent_callbacks=[lambda cc: Content.model("skipped")],
        )
        second = LlmAgent(name="second", model=ScriptedLlm([text("ran")]))
        events = run_turn(make_runner(SequentialAgent(name="seq", sub_agents=[first, second])), "go")
        assert texts_of(events) == ["skipped", "ran"]

    def test_after_agent_appends_reply(self):
        agent = LlmAgent(
            name="bot",
            model=ScriptedLlm([text("answer")]),
            after_agent_callbacks=[lambda cc: None, lambda cc: Content.model("anything else?")],
        )
        assert texts_of(run_turn(make_runner(agent), "hi")) == ["answer", "anything else?"]

    def test_end_invocation_stops_siblings(self):
        def stop(callback_context):
            callback_context.end_invocation()
            return None

        first = LlmAgent(name="first", model=ScriptedLlm([text("one")]), after_agent_callbacks=[stop])
        second = LlmAgent(name="second", model=ScriptedLlm())
        events = run_turn(make_runner(SequentialAgent(name="seq", sub_agents=[first, second])), "go")
        assert texts_of(events) == ["one"]


# ===========================================================================
# Transfers
# ===========================================================================


class TestTransfer:
    def _tree(self, **child_kwargs):
        root_llm = ScriptedLlm([call("transfer_to_agent", agent_name="billing")])
        billing_llm = ScriptedLlm([text("billing here"), text("still billing")])
        billing = LlmAgent(
            name="billing", description="Handles invoices.", model=billing_llm, **child_kwargs
        )
        root = LlmAgent(name="root", model=root_llm, sub_agents=[billing])
        return root, root_llm, billing_llm

    def test_transfer_hands_over_turn(self):
        root, root_llm, billing_llm = self._tree()
        events = run_turn(make_runner(root), "my invoice is wrong")

        assert [e.author for e in events] == ["root", "root", "billing"]
        assert events[1].actions.transfer_to_agent == "billing"
        assert events[2].content.text == "billing here"
        declared = root_llm.requests[0].tools_dict["transfer_to_agent"]
        assert declared.agent_names == ["billing"]

    def test_transferred_agent_sees_context(self):
        root, _, billing_llm = self._tree()
        run_turn(make_runner(root), "my invoice is wrong")
        contents = billing_llm.requests[0].contents
        assert contents[0].text == "my invoice is wrong"
        assert contents[1].parts[0].text == "For context:"

    def test_next_turn_resumes_transferred_agent(self):
        root, root_llm, billing_llm = self._tree()
        runner = make_runner(root)
        run_turn(runner, "my invoice is wrong")
        events = run_turn(runner, "thanks")
        assert texts_of(events) == ["still billing"]
        assert len(root_llm.requests) == 1

    def test_next_turn_returns_to_root_when_parent_disallowed(self):
        root, root_llm, billing_llm = self._tree(disallow_transfer_to_parent=True)
        root_llm.responses.append(text("root again"))
        runner = make_runner(root)
        run_turn(runner, "my invoice is wrong")
        assert texts_of(run_turn(runner, "thanks")) == ["root again"]

    def test_invalid_target_reported_to_model(self):
        root_llm = ScriptedLlm([call("transfer_to_agent", agent_name="ghost"), text("sorry")])
        root = LlmAgent(name="root", model=root_llm, sub_agents=[LlmAgent(name="real", model="m")])
        events = run_turn(make_runner(root), "hi")
        payload = events[1].get_function_responses()[0].response
        assert "not a valid transfer target" in payload["message"]
        assert events[1].actions.transfer_to_agent is None
        assert texts_of(events) == ["sorry"]


# ===========================================================================
# Workflow agents
# ===========================================================================


class TestSequentialAgent:
    def test_runs_in_order_sharing_state(self):
        writer = LlmAgent(name="writer", model=ScriptedLlm([text("a poem")]), output_key="draft")
        reviewer_llm = ScriptedLlm([text("looks good")])
        reviewer = LlmAgent(name="reviewer", model=reviewer_llm, instruction="Review: {draft}")
        pipeline = SequentialAgent(name="pipeline", sub_agents=[writer, reviewer])

        events = run_turn(make_runner(pipeline), "write a poem")

        assert texts_of(events) == ["a poem", "looks good"]
        assert "Review: a poem" in reviewer_llm.requests[0].system_instruction
        assert len({e.invocation_id for e in events}) == 1

    def test_escalation_stops_sequence(self):
        def stop(tool_context: ToolContext) -> str:
            """Stop the pipeline."""
            tool_context.actions.escalate = True
            return "stopping"

        first = LlmAgent(name="first", model=ScriptedLlm([call("stop")]), tools=[stop])
        second = LlmAgent(name="second", model=ScriptedLlm())
        events = run_turn(make_runner(SequentialAgent(name="seq", sub_agents=[first, second])), "go")
        assert events[-1].actions.escalate is True
        assert all(e.author == "first" for e in events)

    def test_resumes_from_root_next_turn(self):
        first = LlmAgent(name="first", model=ScriptedLlm([text("1a"), text("1b")]))
        second = LlmAgent(name="second", model=ScriptedLlm([text("2a"), text("2b")]))
        runner = make_runner(SequentialAgent(name="seq", sub_agents=[first, second]))
        run_turn(runner, "go")
        assert texts_of(run_turn(runner, "again")) == ["1b", "2b"]


class TestLoopAgent:
    def test_exit_loop_escalates(self):
        writer = LlmAgent(name="writer", model=ScriptedLlm([text("v1"), text("v2")]))
        checker = LlmAgent(
            name="checker",
            model=ScriptedLlm([text("needs work"), call("exit_loop")]),
            tools=[exit_loop],
        )
        loop = LoopAgent(name="refine", max_iterations=5, sub_agents=[writer, checker])

        events = run_turn(make_runner(loop), "write")

        assert texts_of(events) == ["v1", "needs work", "v2"]
        assert events[-1].actions.escalate is True
        assert events[-1].actions.skip_summarization is True

    def test_max_iterations(self):
        writer = LlmAgent(name="writer", model=ScriptedLlm([text("v1"), text("v2")]))
        events = run_turn(make_runner(LoopAgent(name="loop", max_iterations=2, sub_agents=[writer])), "go")
        assert texts_of(events) == ["v1", "v2"]

    def test_zero_iterations(self):
        writer = LlmAgent(name="writer", model=ScriptedLlm())
        assert run_turn(make_runner(LoopAgent(name="loop", max_iterations=0, sub_agents=[writer])), "go") == []

    def test_empty_loop_ends(self):
        assert run_turn(make_runner(LoopAgent(name="loop")), "go") == []

    def test_negative_iterations_rejected(self):
        with pytest.raises(ValueError):
            LoopAgent(name="loop", max_iterations=-1)


class TestParallelAgent:
    def test_branches_isolated(self):
        web_llm = ScriptedLlm([call("add", a=1, b=1), text("web done")])
        papers_llm = ScriptedLlm([text("papers done")])
        web = LlmAgent(name="web", model=web_llm, tools=[add])
        papers = LlmAgent(name="papers", model=papers_llm)
        runner = make_runner(ParallelAgent(name="research", sub_agents=[web, papers]))

        events = run_turn(runner, "find sources")

        web_events = [e for e in events if e.author == "web"]
        papers_events = [e for e in events if e.author == "papers"]
        assert [e.branch for e in web_events] == ["web"] * 3
        assert [e.branch for e in papers_events] == ["papers"]
        assert web_events[-1].content.text == "web done"
        assert web_events[0].get_function_calls()
        assert web_events[1].get_function_responses()
        assert {e.invocation_id for e in web_events}.isdisjoint(
            {e.invocation_id for e in papers_events}
        )
        for request in web_llm.requests + papers_llm.requests:
            assert all("done" not in c.text for c in request.contents)
        assert len(load_session(runner).events) == 1 + len(events)

    def test_branch_waits_for_consumer(self):
        produced = []

        def tracking(name):
            def respond(request):
                produced.append(name)
                return text(f"{name} said")

            return respond

        a = LlmAgent(name="a", model=ScriptedLlm([tracking("a")]))
        b = LlmAgent(name="b", model=ScriptedLlm([tracking("b")]))
        runner = make_runner(ParallelAgent(name="fan", sub_agents=[a, b]))
        stream = runner.run(user_id="u1", session_id="s1", new_message=Content.user("go"))

        first = next(stream)
        assert first.content.text.endswith("said")
        rest = list(stream)
        assert sorted(texts_of([first] + rest)) == ["a said", "b said"]
        assert sorted(produced) == ["a", "b"]

    def test_branch_error_propagates(self):
        ok = LlmAgent(name="ok", model=ScriptedLlm([text("fine")]))
        broken = LlmAgent(name="broken", model=ScriptedLlm([model_down]))
        runner = make_runner(ParallelAgent(name="fan", sub_agents=[ok, broken]))
        with pytest.raises(ValueError, match="model unavailable"):
            run_turn(runner, "go")

    def test_branches_run_on_worker_threads(self):
        seen = set()

        def record(request):
            seen.add(threading.current_thread().name)
            return text("ok")

        agents = [LlmAgent(name=n, model=ScriptedLlm([record])) for n in ("x", "y")]
        run_turn(make_runner(ParallelAgent(name="fan", sub_agents=agents)), "go")
        assert seen == {"strand-fan-x", "strand-fan-y"}

    def _gated_fan(self, gate: threading.Event) -> ParallelAgent:
        def slow(request):
            gate.wait(timeout=5)
            return text("slow said")

        fast = LlmAgent(name="fast", model=ScriptedLlm([text("fast said")]))
        slow_agent = LlmAgent(name="slow", model=ScriptedLlm([slow]))
        return ParallelAgent(name="fan", sub_agents=[fast, slow_agent])

    @staticmethod
    def _branch_threads() -> list[threading.Thread]:
        return [t for t in threading.enumerate() if t.name.startswith("strand-fan-")]

    def test_closing_stream_joins_branches(self):
        gate = threading.Event()
        fan = self._gated_fan(gate)
        stream = fan.run(_context(fan))

        assert next(stream).content.text == "fast said"
        threading.Timer(0.05, gate.set).start()
        stream.close()

        assert not any(t.is_alive() for t in self._branch_threads())

    def test_join_gives_up_after_timeout(self, caplog):
        gate = threading.Event()
        fan = self._gated_fan(gate)
        fan.join_timeout = 0.05
        stream = fan.run(_context(fan))

        next(stream)
        with caplog.at_level("WARNING", logger="strand.agents.parallel"):
            stream.close()

        assert "strand-fan-slow" in caplog.text
        gate.set()
        for thread in self._branch_threads():
            thread.join(timeout=5)
        assert not any(t.is_alive() for t in self._branch_threads())


class TestGraphAgent:
    def _triage(self, verdict: str, **kwargs):
        classifier = LlmAgent(name="classifier", model=ScriptedLlm([text(verdict)]), output_key="kind")
        refunds = LlmAgent(name="refunds", model=ScriptedLlm([text("refund issued")]))
        answers = LlmAgent(name="answers", model=ScriptedLlm([text("here is the answer")]))
        return GraphAgent(
            name="triage",
            nodes=[
                GraphNode("classify", classifier, targets=["refund", "answer"]),
                GraphNode("refund", refunds, condition=lambda ev, ctx: ctx.state.get("kind") == "refund"),
                GraphNode("answer", answers, condition=lambda ev, ctx: ctx.state.get("kind") != "refund"),
            ],
            root_node="classify",
            **kwargs,
        )

    @pytest.mark.parametrize(
        "verdict,expected",
        [("refund", ["classify", "refund"]), ("question", ["classify", "answer"])],
    )
    def test_conditions_route_on_committed_state(self, verdict, expected):
        events = run_turn(make_runner(self._triage(verdict)), "help")
        assert events[-1].author == "triage"
        assert events[-1].custom_metadata == {"executed_nodes": expected}
        assert len(texts_of(events)) == 2

    def test_condition_receives_last_event(self):
        seen = []
        first = LlmAgent(name="first", model=ScriptedLlm([text("go on")]))
        second = LlmAgent(name="second", model=ScriptedLlm([text("done")]))
        graph = GraphAgent(
            name="g",
            nodes=[
                GraphNode("a", first, targets=["b"]),
                GraphNode("b", second, condition=lambda ev, ctx: seen.append(ev.content.text) or True),
            ],
            root_node="a",
        )
        run_turn(make_runner(graph), "start")
        assert seen == ["go on"]

    def test_cycle_bounded_by_max_steps(self):
        echo = LlmAgent(name="echo", model=ScriptedLlm([text("again")] * 3))
        graph = GraphAgent(
            name="g", nodes=[GraphNode("echo", echo, targets=["echo"])], root_node="echo", max_steps=3
        )
        events = run_turn(make_runner(graph), "start")
        assert events[-1].custom_metadata == {"executed_nodes": ["echo"] * 3}

    def test_node_failure_reported(self):
        broken = LlmAgent(name="broken", model=ScriptedLlm([model_down]))
        graph = GraphAgent(name="g", nodes=[GraphNode("broken", broken)], root_node="broken")
        events = run_turn(make_runner(graph), "start")
        assert events[-1].error_code == NODE_EXECUTION_ERROR
        assert "model unavailable" in events[-1].error_message
        assert events[-1].custom_metadata == {"node": "broken"}

    def test_llm_call_limit_is_fatal(self):
        graph = self._triage("question")
        with pytest.raises(LlmCallsLimitExceededError):
            run_turn(make_runner(graph), "help", run_config=RunConfig(max_llm_calls=1))

    @pytest.mark.parametrize(
        "nodes,root",
        [
            ([], "a"),
            ([GraphNode("a", LlmAgent(name="x1", model="m"))], "missing"),
            ([GraphNode("a", LlmAgent(name="x2", model="m"), targets=["zzz"])], "a"),
            (
                [GraphNode("a", LlmAgent(name="x3", model="m")), GraphNode("a", LlmAgent(name="x4", model="m"))],
                "a",
            ),
        ],
    )
    def test_invalid_graphs(self, nodes, root):
        with pytest.raises(GraphDefinitionError):
            GraphAgent(name="g", nodes=nodes, root_node=root)

    def test_non_positive_max_steps(self):
        with pytest.raises(GraphDefinitionError):
            GraphAgent(name="g", nodes=[GraphNode("a", LlmAgent(name="y", model="m"))], root_node="a", max_steps=0)


# ===========================================================================
# Credentials
# ===========================================================================


class TestCredentialFlow:
    def test_request_then_resume(self):
        llm = ScriptedLlm(
            [call("fetch_weather", city="Oslo"), text("Please sign in."), text("Sunny in Oslo.")]
        )
        runner = make_runner(LlmAgent(name="bot", model=llm, tools=[fetch_weather]))

        first = run_turn(runner, "weather in Oslo?")

        call_event, auth_event, pending, reply = first
        original_id = call_event.get_function_calls()[0].id
        request = auth_event.get_function_calls()[0]
        assert request.name == REQUEST_CREDENTIAL
        assert request.args["function_call_id"] == original_id
        assert pending.get_function_responses()[0].response == {"status": "pending"}
        assert reply.content.text == "Please sign in."
        assert credential_request_state(load_session(runner).events, original_id) is (
            CredentialRequestState.AWAITING_CREDENTIAL
        )

        filled = WEATHER_AUTH.model_copy(update={"exchanged_credential": {"token": "t0k"}})
        answer = Content(
            role="user",
            parts=[Part.from_function_response(REQUEST_CREDENTIAL, filled.model_dump(mode="json"), id=request.id)],
        )
        second = run_turn(runner, answer)

        resumed = second[0].get_function_responses()[0]
        assert resumed.id == original_id
        assert resumed.response == {"city": "Oslo", "token": "t0k"}
        assert second[-1].content.text == "Sunny in Oslo."
        assert credential_request_state(load_session(runner).events, original_id) is (
            CredentialRequestState.RESUMED
        )
        last_content = llm.requests[-1].contents[-1]
        assert last_content.parts[0].function_response.response["token"] == "t0k"

    def test_credential_not_persisted(self):
        llm = ScriptedLlm([call("fetch_weather", city="Oslo"), text("sign in"), text("ok")])
        runner = make_runner(LlmAgent(name="bot", model=llm, tools=[fetch_weather]))
        request = run_turn(runner, "weather?")[1].get_function_calls()[0]
        filled = WEATHER_AUTH.model_copy(update={"exchanged_credential": {"token": "secret"}})
        run_turn(
            runner,
            Content(
                role="user",
                parts=[Part.from_function_response(REQUEST_CREDENTIAL, filled.model_dump(mode="json"), id=request.id)],
            ),
        )
        assert "secret" not in str(load_session(runner).state)
