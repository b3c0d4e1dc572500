import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import asyncio
import json

import pytest

from flow_orchestrator import (
    CancellationError,
    CancellationToken,
    ModelRunOptions,
    Orchestrator,
    ProtocolError,
)
from flow_orchestrator.util.template_parser import TemplateEvaluator

LOOP_TRANSITION = (
    '{% set i = (local.i or 0) + 1 %}'
    '{{ {"to": [[from[0]] if i < 5 else none], '
    '"local": {"i": i}, "global": {"y": from[0] + 1} } }}'
)


class CountingEvaluator(TemplateEvaluator):
    """TemplateEvaluator that remembers which expressions it evaluated."""

    def __init__(self):
        super().__init__()
        self.evaluated = []

    async def evaluate(self, expression, data):
        self.evaluated.append(expression)
        return await super().evaluate(expression, data)


class TestEvents:
    """Externally dispatched events."""

    def setup_method(self):
        self.orchestrator = Orchestrator(functions={'pair': lambda a, b: [a, b], 'echo': lambda v: v})

    @pytest.mark.asyncio
    async def test_fifo_duplicate_dependency(self):
        """A name repeated in from consumes its arrivals oldest first."""
        handle = self.orchestrator.run({
            'functions': {'pair': {}},
            'events': {'e': {}},
            'connections': [{
                'from': ['e', 'e'],
                'transition': '{{ {"to": [[from[0], from[1]]]} }}',
                'to': ['pair'],
            }],
        })
        for payload in (1, 2, 3, 4):
            handle.dispatch('e', payload)
        result = await handle

        state = result['state']
        assert state['finals']['functions']['pair'] == [[1, 2], [3, 4]]
        assert state['finals']['events']['e'] == [1, 2, 3, 4]
        assert state['waitings'] == [{}]

    @pytest.mark.asyncio
    async def test_event_channel_alias(self):
        handle = self.orchestrator.run({
            'functions': {'echo': {}},
            'events': {'click': {'ref': 'ui'}},
            'connections': [{'from': ['click'], 'to': ['echo']}],
        })
        handle.dispatch('ui', 'pressed')
        result = await handle
        assert result['state']['finals']['events'] == {'click': ['pressed']}
        assert result['state']['finals']['functions'] == {'echo': ['pressed']}

    @pytest.mark.asyncio
    async def test_event_joins_a_function_output(self):
        orchestrator = Orchestrator(functions={'greet': lambda: 'Hello', 'join': lambda a, b: f"{a} {b}"})
        handle = orchestrator.run({
            'functions': {'greet': {'args': []}, 'join': {}},
            'events': {'name': {}},
            'connections': [{
                'from': ['greet', 'name'],
                'transition': '{{ {"to": [[from[0], from[1]]]} }}',
                'to': ['join'],
            }],
        })
        handle.dispatch('name', 'World')
        result = await handle
        assert result['state']['finals']['functions']['join'] == ['Hello World']

    @pytest.mark.asyncio
    async def test_unknown_channel_is_ignored(self):
        handle = self.orchestrator.run({
            'functions': {'echo': {}},
            'events': {'e': {}},
            'connections': [{'from': ['e'], 'to': ['echo']}],
        })
        handle.dispatch('nope', 1)
        handle.dispatch('e', 2)
        result = await handle
        assert result['state']['finals']['events'] == {'e': [2]}

    @pytest.mark.asyncio
    async def test_once_event_violation(self):
        handle = self.orchestrator.run({
            'functions': {'echo': {}},
            'events': {'e': {'once': True}},
            'connections': [{'from': ['e'], 'to': ['echo']}],
        })
        handle.dispatch('e', 1)
        handle.dispatch('e', 2)
        with pytest.raises(ProtocolError) as exc_info:
            await handle
        assert exc_info.value.state['received'] == {'e': True}
        assert exc_info.value.state['finals']['events'] == {'e': [1]}

    @pytest.mark.asyncio
    async def test_once_event_violation_after_resume(self):
        config = {
            'functions': {'echo': {}},
            'events': {'e': {'once': True}},
            'connections': [{'from': ['e'], 'to': ['echo']}],
        }
        handle = self.orchestrator.run(config)
        handle.dispatch('e', 1)
        result = await handle
        assert result['state']['received'] == {'e': True}

        resumed = self.orchestrator.run(config, prior_state=result['state'])
        resumed.dispatch('e', 2)
        with pytest.raises(ProtocolError):
            await resumed

    @pytest.mark.asyncio
    async def test_dispatch_after_settlement_is_ignored(self):
        handle = self.orchestrator.run({
            'functions': {'echo': {}},
            'events': {'e': {}},
            'connections': [{'from': ['e'], 'to': ['echo']}],
        })
        handle.dispatch('e', 1)
        result = await handle
        handle.dispatch('e', 2)
        await asyncio.sleep(0)
        assert result['state']['finals']['events'] == {'e': [1]}
        assert handle.state['finals']['events'] == {'e': [1]}


class TestResume:
    """Snapshots taken at any state change resume to the same final state."""

    def setup_method(self):
        self.orchestrator = Orchestrator(functions={'fn1': lambda x: x + 1})
        self.config = {
            'functions': {'fn1': {'args': [0]}},
            'connections': [{'from': ['fn1'], 'transition': LOOP_TRANSITION, 'to': ['fn1']}],
        }

    @pytest.mark.asyncio
    async def test_resume_equivalence_from_every_snapshot(self):
        snapshots = []
        handle = self.orchestrator.run(self.config)
        handle.subscribe('state.change', lambda detail: snapshots.append(detail['state']))
        expected = (await handle)['state']

        assert len(snapshots) > 5
        assert any(snapshot['firings'] for snapshot in snapshots)
        assert any(snapshot['runnings'] for snapshot in snapshots)
        for snapshot in snapshots:
            result = await self.orchestrator.run(self.config, prior_state=snapshot)
            assert result['state'] == expected

    @pytest.mark.asyncio
    async def test_resume_from_json_serialized_snapshots(self):
        """Snapshots survive json.dumps/json.loads, including int-keyed sink outputs."""
        config = {
            'functions': self.config['functions'],
            'connections': self.config['connections'] + [
                {'from': ['fn1'], 'transition': '{{ from[0] * 10 }}', 'to': []},
            ],
        }
        snapshots = []
        handle = self.orchestrator.run(config)
        handle.subscribe('state.change', lambda detail: snapshots.append(json.dumps(detail['state'])))
        expected = (await handle)['state']
        assert expected['finals']['connections'] == {1: [10, 20, 30, 40, 50]}

        for serialized in snapshots:
            result = await self.orchestrator.run(config, prior_state=json.loads(serialized))
            assert result['state'] == expected

    @pytest.mark.asyncio
    async def test_resume_does_not_mutate_the_snapshot(self):
        snapshots = []
        handle = self.orchestrator.run(self.config)
        handle.subscribe('state.change', lambda detail: snapshots.append(detail['state']))
        await handle

        first = snapshots[0]
        before = repr(first)
        await self.orchestrator.run(self.config, prior_state=first)
        assert repr(first) == before

    @pytest.mark.asyncio
    async def test_resumed_run_launches_no_roots(self):
        calls = []

        def fn1(x):
            calls.append(x)
            return x + 1

        orchestrator = Orchestrator(functions={'fn1': fn1})
        final = (await orchestrator.run(self.config))['state']
        calls.clear()

        result = await orchestrator.run(self.config, prior_state=final)
        assert calls == []
        assert result['state'] == final

    @pytest.mark.asyncio
    async def test_transformed_inputs_are_not_transformed_again(self):
        evaluator = CountingEvaluator()
        orchestrator = Orchestrator(functions={'fn1': lambda x: x + 1}, evaluator=evaluator)
        config = {'functions': {'fn1': {'args': [2, 3], 'inputsTransformation': '{{ [args[0] * args[1]] }}'}}}

        snapshots = []
        handle = orchestrator.run(config)
        handle.subscribe('state.change', lambda detail: snapshots.append(detail['state']))
        expected = (await handle)['state']
        transformed = [s for s in snapshots if s['runnings'] and s['runnings'][0]['transformed']]
        assert transformed[0]['runnings'][0]['inputs'] == [6]

        evaluator.evaluated.clear()
        result = await orchestrator.run(config, prior_state=transformed[0])
        assert evaluator.evaluated == []
        assert result['state'] == expected
        assert result['state']['finals']['functions']['fn1'] == [7]

    @pytest.mark.asyncio
    async def test_resume_rehydrates_buffered_arrivals(self):
        orchestrator = Orchestrator(functions={'pair': lambda a, b: [a, b]})
        config = {
            'functions': {'pair': {}},
            'events': {'e': {}},
            'connections': [{
                'from': ['e', 'e'],
                'transition': '{{ {"to": [[from[0], from[1]]]} }}',
                'to': ['pair'],
            }],
        }
        snapshots = []
        handle = orchestrator.run(config)
        handle.subscribe('state.change', lambda detail: snapshots.append(detail['state']))
        handle.dispatch('e', 1)
        handle.dispatch('e', 2)
        await handle

        buffered = [s for s in snapshots if s['waitings'][0]]
        assert buffered[0]['waitings'] == [{'e': [1]}]

        resumed = orchestrator.run(config, prior_state=buffered[0])
        resumed.dispatch('e', 2)
        result = await resumed
        assert result['state']['finals']['functions']['pair'] == [[1, 2]]


class TestConcurrencyAndCancellation:

    def setup_method(self):
        self.calls = []

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        orchestrator = Orchestrator(functions={'fn1': lambda: self.calls.append('fn1')})
        token = CancellationToken()
        token.cancel('stop')

        with pytest.raises(CancellationError) as exc_info:
            await orchestrator.run({'functions': {'fn1': {}}}, options={'cancellation_token': token})
        assert exc_info.value.reason == 'stop'
        assert exc_info.value.state['runnings'] == []
        assert self.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_during_run(self):
        token = CancellationToken()

        async def fn1():
            self.calls.append('fn1')
            token.cancel('midway')
            await asyncio.sleep(0)
            return 'done'

        def fn2(value):
            self.calls.append('fn2')
            return value

        orchestrator = Orchestrator(functions={'fn1': fn1, 'fn2': fn2})
        handle = orchestrator.run(
            {'connections': [{'from': ['fn1'], 'to': ['fn2']}]},
            options=ModelRunOptions(cancellation_token=token),
        )
        with pytest.raises(CancellationError) as exc_info:
            await handle
        await asyncio.sleep(0.01)

        assert exc_info.value.reason == 'midway'
        assert exc_info.value.state['runnings'][0]['name'] == 'fn1'
        assert self.calls == ['fn1']

    @pytest.mark.asyncio
    async def test_cancel_while_waiting_for_events(self):
        token = CancellationToken()
        orchestrator = Orchestrator(functions={'echo': lambda v: v})
        handle = orchestrator.run(
            {'functions': {'echo': {}}, 'events': {'e': {}}, 'connections': [{'from': ['e'], 'to': ['echo']}]},
            options={'cancellation_token': token},
        )
        await asyncio.sleep(0)
        token.cancel()
        with pytest.raises(CancellationError) as exc_info:
            await handle
        assert exc_info.value.reason is None

    @pytest.mark.asyncio
    async def test_second_concurrent_run_is_rejected(self):
        async def slow(value):
            await asyncio.sleep(0.01)
            return value

        orchestrator = Orchestrator(functions={'slow': slow})
        config = {'functions': {'slow': {'args': [1]}}}
        first = orchestrator.run(config)
        second = orchestrator.run(config)

        with pytest.raises(ProtocolError):
            await second
        result = await first
        assert result['state']['finals']['functions'] == {'slow': [1]}

    @pytest.mark.asyncio
    async def test_independent_functions_run_concurrently(self):
        started = []
        release = asyncio.Event()

        async def worker(name):
            started.append(name)
            await release.wait()
            return name

        orchestrator = Orchestrator(functions={'worker': worker})
        handle = orchestrator.run({
            'functions': {
                'a': {'ref': 'worker', 'args': ['a']},
                'b': {'ref': 'worker', 'args': ['b']},
            },
        })
        while len(started) < 2:
            await asyncio.sleep(0)
        release.set()
        result = await handle
        assert result['state']['finals']['functions'] == {'a': ['a'], 'b': ['b']}
