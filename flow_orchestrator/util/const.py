EVENT_STATE_CHANGE = 'state.change'
EVENT_RESULTS = 'results'
EVENT_ERRORS = 'errors'
EVENT_SUCCESS = 'success'
EVENT_ERROR = 'error'

# Notifications that can be suffixed with a node name, e.g. 'results.fn1'
NODE_SCOPED_EVENTS = frozenset({
    EVENT_RESULTS,
    EVENT_ERRORS,
})

LIFECYCLE_EVENTS = frozenset({
    EVENT_STATE_CHANGE,
    EVENT_RESULTS,
    EVENT_ERRORS,
    EVENT_SUCCESS,
    EVENT_ERROR,
})

OPAQUE_TOKEN_PREFIX = '__opaque_'
OPAQUE_TOKEN_SUFFIX = '__'

# Context keys handed to the expression evaluator
TRANSITION_KEY_FROM = 'from'
TRANSITION_KEY_GLOBAL = 'global'
TRANSITION_KEY_LOCAL = 'local'
TRANSITION_KEY_TO = 'to'
TRANSFORMATION_KEY_ARGS = 'args'
TRANSFORMATION_KEY_RESULT = 'result'
