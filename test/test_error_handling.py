import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest

from flow_orchestrator import (
    ExecutionError,
    Orchestrator,
    OrchestratorError,
    ValidationError,
)


class TestValidationErrors:
    """Graph problems reject the run before any callable is invoked."""

    def setup_method(self):
        self.calls = []

        def fn1(value=None):
            self.calls.append('fn1')
            return value

        def fn2(value=None):
            self.calls.append('fn2')
            return value

        self.orchestrator = Orchestrator(functions={'fn1': fn1, 'fn2': fn2})

    async def _rejects(self, config, **kwargs) -> ValidationError:
        with pytest.raises(ValidationError) as exc_info:
            await self.orchestrator.run(config, **kwargs)
        assert self.calls == []
        return exc_info.value

    @pytest.mark.asyncio
    async def test_missing_from(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': ['Hello']}, 'fn2': {}},
            'connections': [{'to': ['fn2']}],
        })
        assert 'connections.0.from' in str(error)

    @pytest.mark.asyncio
    async def test_empty_from(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': ['Hello']}, 'fn2': {}},
            'connections': [{'from': [], 'to': ['fn2']}],
        })
        assert 'The connection 0 from is an empty array.' in str(error)
        assert error.errors[0]['type'] == 'EmptyFrom'

    @pytest.mark.asyncio
    async def test_unknown_function_reference(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': ['Hello']}, 'fnX': {}},
        })
        assert 'Function or alias `fnX` not existing' in str(error)

    @pytest.mark.asyncio
    async def test_unknown_alias(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': ['Hello'], 'ref': 'missing'}},
        })
        assert 'Function or alias `missing` not existing' in str(error)

    @pytest.mark.asyncio
    async def test_args_must_be_a_list(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': 'Hello'}},
        })
        assert 'functions.fn1.args' in str(error)

    @pytest.mark.asyncio
    async def test_unknown_config_key(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': ['Hello'], 'throw': True}},
        })
        assert 'functions.fn1.throw' in str(error)

    @pytest.mark.asyncio
    async def test_connection_to_an_event(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': ['Hello']}},
            'events': {'e': {}},
            'connections': [{'from': ['fn1'], 'to': ['e']}],
        })
        assert error.errors[0]['type'] == 'EventTarget'

    @pytest.mark.asyncio
    async def test_connection_from_undeclared_node(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': ['Hello']}, 'fn2': {}},
            'connections': [{'from': ['nope'], 'to': ['fn2']}],
        })
        assert error.errors[0]['type'] == 'UnknownNode'

    @pytest.mark.asyncio
    async def test_default_transition_needs_matching_lengths(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': ['Hello']}, 'fn2': {}},
            'connections': [{'from': ['fn1', 'fn1'], 'to': ['fn2']}],
        })
        assert error.errors[0]['type'] == 'ConnectionArity'

    @pytest.mark.asyncio
    async def test_function_and_event_share_a_name(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': ['Hello']}},
            'events': {'fn1': {}},
        })
        assert error.errors[0]['type'] == 'DuplicateNodeName'

    @pytest.mark.asyncio
    async def test_every_problem_is_reported(self):
        error = await self._rejects({
            'functions': {'fn1': {'args': ['Hello']}, 'fnX': {}, 'fnY': {}},
        })
        assert len(error.errors) == 2
        assert '2 validation errors' in str(error)

    @pytest.mark.asyncio
    async def test_invalid_options(self):
        error = await self._rejects(
            {'functions': {'fn1': {'args': ['Hello']}}},
            options={'debug': True, 'verbose': True},
        )
        assert 'options.verbose' in str(error)

    @pytest.mark.asyncio
    async def test_incompatible_prior_state(self):
        config = {
            'functions': {'fn1': {'args': ['Hello']}, 'fn2': {}},
            'connections': [{'from': ['fn1'], 'to': ['fn2']}],
        }
        result = await Orchestrator(functions={'fn1': lambda v: v, 'fn2': lambda v: v}).run(config)
        prior_state = result['state']
        prior_state['variables']['locals'].append({})
        prior_state['runnings'].append({'id': 'x', 'name': 'ghost', 'inputs': []})

        error = await self._rejects(config, prior_state=prior_state)
        messages = [err['error_message'] for err in error.errors]
        assert any('variables.locals' in message for message in messages)
        assert any('ghost' in message for message in messages)


class TestExecutionErrors:
    """Failures while running: transitions, transformations and callables."""

    def setup_method(self):
        self.calls = []

        def fn1(value='Hello'):
            self.calls.append('fn1')
            return value

        def fn2(value=None):
            self.calls.append('fn2')
            return value

        def fails(*args):
            self.calls.append('fails')
            raise ValueError("boom")

        self.orchestrator = Orchestrator(functions={'fn1': fn1, 'fn2': fn2, 'fails': fails})

    def _config(self, transition):
        return {
            'functions': {'fn1': {'args': ['Hello']}, 'fn2': {}},
            'connections': [{'from': ['fn1'], 'transition': transition, 'to': ['fn2']}],
        }

    @pytest.mark.asyncio
    async def test_wrong_transition_syntax(self):
        with pytest.raises(ExecutionError) as exc_info:
            await self.orchestrator.run(self._config('{{ {"to": [[from[0]]] }}'))
        assert str(exc_info.value).startswith('Connection 0 transition:')
        assert exc_info.value.connection == 0
        assert 'fn2' not in self.calls

    @pytest.mark.asyncio
    async def test_wrong_to_type(self):
        with pytest.raises(ExecutionError) as exc_info:
            await self.orchestrator.run(self._config('{{ {"to": "fn2"} }}'))
        assert 'must be a list' in str(exc_info.value)
        assert 'Returned:' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_wrong_to_length(self):
        with pytest.raises(ExecutionError) as exc_info:
            await self.orchestrator.run(self._config('{{ {"to": [[1], [2]]} }}'))
        assert 'same length' in str(exc_info.value)
        assert 'fn2' not in self.calls

    @pytest.mark.asyncio
    async def test_wrong_to_element_type(self):
        with pytest.raises(ExecutionError) as exc_info:
            await self.orchestrator.run(self._config('{{ {"to": ["Hello"]} }}'))
        assert 'to[0]' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transition_must_return_an_object(self):
        with pytest.raises(ExecutionError):
            await self.orchestrator.run(self._config('{{ [1, 2] }}'))

    @pytest.mark.asyncio
    async def test_transition_global_must_be_an_object(self):
        with pytest.raises(ExecutionError) as exc_info:
            await self.orchestrator.run(self._config('{{ {"to": [none], "global": 3} }}'))
        assert '"global"' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_inputs_transformation_must_return_a_list(self):
        with pytest.raises(ExecutionError) as exc_info:
            await self.orchestrator.run({
                'functions': {'fn1': {'args': ['Hello'], 'inputsTransformation': '{{ args[0] }}'}},
            })
        assert exc_info.value.node == 'fn1'
        assert self.calls == []

    @pytest.mark.asyncio
    async def test_error_containment(self):
        """A failing function without throws only starves its dependents."""
        errors = []
        handle = self.orchestrator.run({
            'functions': {'fails': {}, 'fn1': {}, 'fn2': {}},
            'connections': [{'from': ['fails'], 'to': ['fn2']}],
        })
        handle.subscribe('errors.fails', errors.append)
        result = await handle

        state = result['state']
        assert state['errors'] == {'fails': [{'type': 'ValueError', 'message': 'boom'}]}
        assert state['finals']['functions'] == {'fn1': ['Hello']}
        assert state['waitings'] == [{}]
        assert 'fn2' not in self.calls
        assert errors == [{'node': 'fails', 'error': {'type': 'ValueError', 'message': 'boom'}}]

    @pytest.mark.asyncio
    async def test_failed_dependency_keeps_sibling_buffered(self):
        """A joined connection never fires when one of its dependencies failed."""
        result = await self.orchestrator.run({
            'functions': {'fn1': {'args': ['a']}, 'fails': {'args': []}, 'fn2': {}},
            'connections': [
                {'from': ['fn1'], 'to': ['fn2']},
                {'from': ['fn1', 'fails'], 'transition': '{{ from }}', 'to': []},
            ],
        })

        state = result['state']
        assert state['waitings'] == [{}, {'fn1': ['a']}]
        assert state['finals']['connections'] == {}
        assert state['finals']['functions'] == {'fn1': ['a'], 'fn2': ['a']}
        assert state['errors'] == {'fails': [{'type': 'ValueError', 'message': 'boom'}]}
        assert state['runnings'] == []
        assert state['firings'] == []

    @pytest.mark.asyncio
    async def test_throws_aborts_the_run(self):
        failures = []
        handle = self.orchestrator.run({
            'functions': {'fails': {'args': [], 'throws': True}, 'fn2': {}},
            'connections': [{'from': ['fails'], 'to': ['fn2']}],
        })
        handle.subscribe('error', failures.append)
        with pytest.raises(ExecutionError) as exc_info:
            await handle

        error = exc_info.value
        assert error.node == 'fails'
        assert isinstance(error.__cause__, ValueError)
        assert error.state['errors']['fails'][0]['message'] == 'boom'
        assert failures[0]['error'] is error
        assert failures[0]['state'] == error.state

    @pytest.mark.asyncio
    async def test_rejections_share_a_base_class(self):
        with pytest.raises(OrchestratorError) as exc_info:
            await self.orchestrator.run(self._config('{{ {"to": "fn2"} }}'))
        assert exc_info.value.state is not None
        assert exc_info.value.state['finals']['functions'] == {'fn1': ['Hello']}
