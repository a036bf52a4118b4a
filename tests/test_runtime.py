from __future__ import annotations

import math

import pytest

from tests.support.harness import (
    ElementaryBugError,
    ElementaryRuntimeError,
    ElementaryTestingError,
)
from elementary import __version__
from elementary import runtime as rt
from elementary.runtime import RuntimeContext
from elementary.types import (
    UNDEFINED,
    JsArray,
    JsBool,
    JsFunction,
    JsNull,
    JsNumber,
    JsObject,
    JsString,
    NativeFunction,
)


def num(x: float) -> JsNumber:
    return JsNumber(float(x))


def s(x: str) -> JsString:
    return JsString(x)


# ---------------- dot ----------------

def test_dot_reads_object_member(ctx) -> None:
    assert rt.dot(ctx, JsObject({"a": num(1)}), s("a")) == num(1)


def test_dot_reads_string_length(ctx) -> None:
    assert rt.dot(ctx, s("abc"), s("length")) == num(3)


def test_dot_reads_array_length(ctx) -> None:
    assert rt.dot(ctx, JsArray([num(1), num(2)]), s("length")) == num(2)


@pytest.mark.parametrize(
    "value",
    [
        pytest.param(UNDEFINED, id="undefined"),
        pytest.param(JsNull(), id="null"),
        pytest.param(NativeFunction("f", lambda this, args: UNDEFINED), id="function"),
    ],
)
def test_dot_rejects_non_object_bases(ctx, value) -> None:
    with pytest.raises(ElementaryRuntimeError, match="cannot access member of non-object value types"):
        rt.dot(ctx, value, s("x"))


def test_dot_rejects_absent_member(ctx) -> None:
    with pytest.raises(ElementaryRuntimeError, match="object does not have member 'b'"):
        rt.dot(ctx, JsObject({"a": num(1)}), s("b"))


def test_dot_rejects_member_holding_undefined(ctx) -> None:
    with pytest.raises(ElementaryRuntimeError, match="object does not have member 'a'"):
        rt.dot(ctx, JsObject({"a": UNDEFINED}), s("a"))


def test_dot_wraps_string_split(ctx) -> None:
    split = rt.dot(ctx, s("a,b"), s("split"))

    assert isinstance(split, NativeFunction)
    result = split.fn(UNDEFINED, [s(",")])
    assert isinstance(result, JsArray)
    assert [x.value for x in result.items] == ["a", "b"]


def test_check_call_rejects_unknown_method(ctx) -> None:
    with pytest.raises(ElementaryBugError):
        rt.check_call(ctx, s("abc"), s("toUpperCase"), JsArray([]))


# ---------------- indexed access ----------------

def test_array_bounds_check_returns_element() -> None:
    assert rt.array_bounds_check(JsArray([num(5), num(6)]), num(1)) == num(6)


@pytest.mark.parametrize(
    "index, message",
    [
        pytest.param(num(-1), "array index '-1' is not valid", id="negative"),
        pytest.param(num(1.5), "array index '1.5' is not valid", id="fraction"),
        pytest.param(s("0"), "array index '0' is not valid", id="string"),
        pytest.param(num(math.nan), "array index 'NaN' is not valid", id="nan"),
        pytest.param(num(2), "index '2' is out of array bounds", id="past-end"),
    ],
)
def test_array_bounds_check_rejects_bad_indices(index, message) -> None:
    with pytest.raises(ElementaryRuntimeError, match=message):
        rt.array_bounds_check(JsArray([num(1), num(2)]), index)


def test_array_bounds_check_rejects_unpopulated_slot() -> None:
    with pytest.raises(ElementaryRuntimeError, match="out of array bounds"):
        rt.array_bounds_check(JsArray([UNDEFINED]), num(0))


def test_array_bounds_check_rejects_non_arrays() -> None:
    with pytest.raises(ElementaryRuntimeError, match="array indexing called on a non-array value type"):
        rt.array_bounds_check(JsObject({"0": num(1)}), num(0))


def test_check_array_writes_and_returns_value() -> None:
    arr = JsArray([num(1), num(2)])

    assert rt.check_array(arr, num(0), s("x")) == s("x")
    assert arr.items[0] == s("x")


def test_check_array_validates_like_reads() -> None:
    with pytest.raises(ElementaryRuntimeError, match="out of array bounds"):
        rt.check_array(JsArray([num(1)]), num(3), num(0))


@pytest.mark.parametrize("base", [JsObject({"0": num(1)}), num(5), s("ab")], ids=["object", "number", "string"])
def test_check_array_rejects_non_arrays(base) -> None:
    with pytest.raises(ElementaryRuntimeError, match="array indexing called on a non-array value type"):
        rt.check_array(base, num(0), num(2))


# ---------------- member write ----------------

def test_check_member_writes_existing_member(ctx) -> None:
    obj = JsObject({"a": num(1)})

    assert rt.check_member(ctx, obj, s("a"), num(2)) == num(2)
    assert obj.slots["a"] == num(2)


def test_check_member_rejects_new_member(ctx) -> None:
    with pytest.raises(ElementaryRuntimeError, match="object does not have member 'b'"):
        rt.check_member(ctx, JsObject({"a": num(1)}), s("b"), num(2))


def test_check_member_rejects_named_property_on_array(ctx) -> None:
    with pytest.raises(ElementaryRuntimeError, match=r"cannot set \.length of an array"):
        rt.check_member(ctx, JsArray([]), s("length"), num(0))


# ---------------- updates ----------------

def test_check_update_operand_increments_member() -> None:
    obj = JsObject({"n": num(1)})

    assert rt.check_update_operand(s("++"), obj, s("n")) == num(2)
    assert obj.slots["n"] == num(2)


def test_check_update_operand_decrements_array_slot() -> None:
    arr = JsArray([num(5)])

    assert rt.check_update_operand(s("--"), arr, num(0)) == num(4)
    assert arr.items[0] == num(4)


def test_check_update_operand_rejects_missing_member() -> None:
    with pytest.raises(ElementaryRuntimeError, match="object does not have member 'z'"):
        rt.check_update_operand(s("++"), JsObject({}), s("z"))


def test_check_update_operand_rejects_missing_index() -> None:
    with pytest.raises(ElementaryRuntimeError, match="index '3' is out of array bounds"):
        rt.check_update_operand(s("++"), JsArray([num(1)]), num(3))


def test_check_update_operand_rejects_non_numbers() -> None:
    with pytest.raises(ElementaryRuntimeError, match="argument of operator '\\+\\+' must be a number"):
        rt.check_update_operand(s("++"), JsObject({"n": s("a")}), s("n"))


def test_update_only_numbers() -> None:
    assert rt.update_only_numbers(s("--"), num(1)) is UNDEFINED

    with pytest.raises(ElementaryRuntimeError, match="argument of operator '--' must be a number"):
        rt.update_only_numbers(s("--"), s("1"))


def test_check_number_and_return() -> None:
    assert rt.check_number_and_return(s("++"), num(7)) == num(7)

    with pytest.raises(ElementaryRuntimeError):
        rt.check_number_and_return(s("++"), JsBool(True))


# ---------------- binary operators ----------------

def test_add_numbers_and_concatenate_strings() -> None:
    assert rt.apply_num_or_string_op(s("+"), num(1), num(2)) == num(3)
    assert rt.apply_num_or_string_op(s("+"), s("a"), s("b")) == s("ab")


@pytest.mark.parametrize(
    "lhs, rhs",
    [
        pytest.param(num(1), s("a"), id="number-string"),
        pytest.param(s("a"), num(1), id="string-number"),
        pytest.param(JsBool(True), JsBool(True), id="booleans"),
        pytest.param(UNDEFINED, num(1), id="undefined"),
    ],
)
def test_add_rejects_mixed_classes(lhs, rhs) -> None:
    with pytest.raises(ElementaryRuntimeError, match="arguments of operator '\\+' must both be numbers or strings"):
        rt.apply_num_or_string_op(s("+"), lhs, rhs)


NUM_OPS = [
    pytest.param("-", 7, 2, num(5), id="sub"),
    pytest.param("*", 7, 2, num(14), id="mul"),
    pytest.param("/", 7, 2, num(3.5), id="div"),
    pytest.param("%", -7, 2, num(-1), id="mod-sign-of-dividend"),
    pytest.param("<", 1, 2, JsBool(True), id="lt"),
    pytest.param(">=", 2, 2, JsBool(True), id="ge"),
    pytest.param("<<", 1, 4, num(16), id="shl"),
    pytest.param(">>", -16, 2, num(-4), id="sar"),
    pytest.param(">>>", -1, 28, num(15), id="shr"),
    pytest.param("&", 6, 3, num(2), id="and"),
    pytest.param("|", 6, 3, num(7), id="or"),
    pytest.param("^", 6, 3, num(5), id="xor"),
]


@pytest.mark.parametrize("op, a, b, expected", NUM_OPS)
def test_num_ops(op: str, a: float, b: float, expected) -> None:
    assert rt.apply_num_op(s(op), num(a), num(b)) == expected


def test_division_by_zero_follows_ieee() -> None:
    assert rt.apply_num_op(s("/"), num(1), num(0)) == num(math.inf)
    assert rt.apply_num_op(s("/"), num(-1), num(0)) == num(-math.inf)
    assert math.isnan(rt.apply_num_op(s("/"), num(0), num(0)).value)
    assert math.isnan(rt.apply_num_op(s("%"), num(1), num(0)).value)


def test_num_op_rejects_non_numbers() -> None:
    with pytest.raises(ElementaryRuntimeError, match="arguments of operator '-' must both be numbers"):
        rt.apply_num_op(s("-"), s("3"), num(1))


def test_unknown_operator_is_a_bug() -> None:
    with pytest.raises(ElementaryBugError, match="potential bug in ElementaryJS"):
        rt.apply_num_op(s("**"), num(2), num(2))


def test_binary_boolean_op() -> None:
    assert rt.apply_binary_boolean_op(s("&&"), JsBool(True), JsBool(False)) == JsBool(False)
    assert rt.apply_binary_boolean_op(s("||"), JsBool(True), JsBool(False)) == JsBool(True)

    with pytest.raises(ElementaryRuntimeError, match="arguments of operator '&&' must both be booleans"):
        rt.apply_binary_boolean_op(s("&&"), num(1), JsBool(True))

    with pytest.raises(ElementaryBugError):
        rt.apply_binary_boolean_op(s("^^"), JsBool(True), JsBool(True))


# ---------------- arity ----------------

def test_arity_check_passes_on_match() -> None:
    assert rt.arity_check(s("f"), num(2), num(2)) is UNDEFINED


@pytest.mark.parametrize(
    "expected, actual, message",
    [
        pytest.param(1, 2, "function f expected 1 argument but received 2 arguments", id="singular-expected"),
        pytest.param(2, 1, "function f expected 2 arguments but received 1 argument", id="singular-actual"),
        pytest.param(0, 3, "function f expected 0 arguments but received 3 arguments", id="plural"),
    ],
)
def test_arity_check_messages(expected: int, actual: int, message: str) -> None:
    with pytest.raises(ElementaryRuntimeError) as exc_info:
        rt.arity_check(s("f"), num(expected), num(actual))

    assert exc_info.value.message == message


# ---------------- arrays ----------------

def test_create_array_fills_with_initial_value(ctx) -> None:
    arr = rt.create_array(ctx, [num(3), num(0)])

    assert isinstance(arr, JsArray)
    assert arr.items == [num(0), num(0), num(0)]


@pytest.mark.parametrize(
    "args, message",
    [
        pytest.param([num(3)], ".create expects 2 arguments, received 1", id="one-arg"),
        pytest.param([num(3), num(0), num(1)], ".create expects 2 arguments, received 3", id="three-args"),
        pytest.param([num(0), num(0)], "array size must be a positive integer", id="zero"),
        pytest.param([num(-2), num(0)], "array size must be a positive integer", id="negative"),
        pytest.param([num(1.5), num(0)], "array size must be a positive integer", id="fraction"),
        pytest.param([s("3"), num(0)], "array size must be a positive integer", id="string"),
    ],
)
def test_create_array_validation(ctx, args, message: str) -> None:
    with pytest.raises(ElementaryRuntimeError) as exc_info:
        rt.create_array(ctx, args)

    assert exc_info.value.message == message


def test_array_stub_refuses_direct_use(ctx) -> None:
    stub = rt.array_stub(ctx)

    with pytest.raises(ElementaryRuntimeError, match="use Array.create"):
        stub.constructor([num(1)])

    created = stub.props["create"].fn(UNDEFINED, [num(2), s("x")])
    assert [x.value for x in created.items] == ["x", "x"]


class RecordingRunner:
    def __init__(self) -> None:
        self.wrapped = []
        self.ran = []

    def stopify_array(self, array):
        self.wrapped.append(array)
        return array

    def run_test(self, body, timeout_ms: int) -> None:
        self.ran.append(timeout_ms)
        body()


def test_stopify_array_goes_through_installed_runner() -> None:
    runner = RecordingRunner()
    ctx = RuntimeContext(runner)
    arr = rt.create_array(ctx, [num(1), num(0)])

    assert runner.wrapped == [arr]


def test_stopify_array_without_runner_is_identity(ctx) -> None:
    arr = JsArray([num(1)])
    assert rt.stopify_array(ctx, arr) is arr


def test_stopify_array_rejects_non_arrays(ctx) -> None:
    with pytest.raises(ElementaryBugError):
        rt.stopify_array(ctx, num(1))


# ---------------- embedded test switch ----------------

@pytest.mark.parametrize(
    "timeout, expected",
    [
        pytest.param(num(250), 250, id="finite"),
        pytest.param(num(math.nan), 3000, id="nan"),
        pytest.param(num(math.inf), 3000, id="infinity"),
        pytest.param(num(-math.inf), 3000, id="negative-infinity"),
        pytest.param(num(0), 3000, id="zero"),
        pytest.param(num(-5), 3000, id="negative"),
        pytest.param(UNDEFINED, 3000, id="missing"),
    ],
)
def test_enable_tests_timeout(ctx, timeout, expected: int) -> None:
    rt.enable_tests(ctx, JsBool(True), timeout)

    assert ctx.session.enabled
    assert ctx.session.timeout_ms == expected


# ---------------- runner accessors / version ----------------

def test_get_runner_reports_installation_state() -> None:
    assert rt.get_runner(RuntimeContext()).slots["kind"] == s("error")
    assert rt.get_runner(RuntimeContext(RecordingRunner())).slots["kind"] == s("ok")


def test_set_runner_only_resets_from_programs() -> None:
    ctx = RuntimeContext(RecordingRunner())

    with pytest.raises(ElementaryRuntimeError, match="a runner can only be installed by the host"):
        rt.set_runner(ctx, JsObject({}))

    rt.set_runner(ctx, UNDEFINED)
    assert not ctx.has_runner()


def test_version_matches_package() -> None:
    assert rt.version() == s(__version__)


# ---------------- assertions / runtime object ----------------

def test_assert_accepts_true_only() -> None:
    assert rt.check_assertion(JsBool(True)) == JsBool(True)

    with pytest.raises(ElementaryTestingError, match="assertion failed"):
        rt.check_assertion(JsBool(False))

    with pytest.raises(ElementaryTestingError, match="assertion argument '1' is not a boolean value"):
        rt.check_assertion(num(1))


def test_runtime_object_exposes_every_export(ctx) -> None:
    obj = rt.runtime_object(ctx)

    for name in (
        "dot", "arrayBoundsCheck", "checkMember", "checkArray", "checkUpdateOperand",
        "updateOnlyNumbers", "checkNumberAndReturn", "applyNumOrStringOp", "applyNumOp",
        "applyBinaryBooleanOp", "arityCheck", "checkCall", "stopifyArray", "SafeArray",
        "Array", "enableTests", "assert", "test", "summary", "version", "setRunner",
        "getRunner",
    ):
        assert name in obj.slots, name

    assert set(rt.exported_names()) == set(obj.slots)


def test_runtime_object_functions_pad_missing_arguments(ctx) -> None:
    obj = rt.runtime_object(ctx)

    with pytest.raises(ElementaryRuntimeError, match="argument of operator 'undefined' must be a number"):
        obj.slots["updateOnlyNumbers"].fn(UNDEFINED, [])


def test_safe_array_constructor_requires_two_arguments(ctx) -> None:
    safe = rt.runtime_object(ctx).slots["SafeArray"]

    assert len(safe.constructor([num(2), num(1)]).items) == 2
    with pytest.raises(ElementaryRuntimeError, match="new Array expects 2 arguments, received 1"):
        safe.constructor([num(2)])


def test_call_function_invokes_js_functions() -> None:
    from elementary.parser import parse_source
    from elementary.types import Frame

    fn_node = parse_source("(function (a) { return a; });").children[0].children[0]
    params, body = fn_node.children[1], fn_node.children[2]
    fn = JsFunction([str(p) for p in params.children], body, Frame())

    assert rt.call_function(fn, [num(4)]) == num(4)
