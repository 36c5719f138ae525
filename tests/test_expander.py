import pytest

from cel_validator.errors import (
    CircularReferenceError,
    ParameterArityError,
    RuleExpansionError,
    UndefinedReferenceError,
)
from cel_validator.expander import (
    expand_expression,
    expand_rules,
    find_references,
    split_arguments,
)
from cel_validator.models import Rule, RuleSet, Severity

PORT = "values.service.port <= 65535"
TYPE = "values.service.type in ['ClusterIP', 'NodePort']"


def test_expression_without_references_is_unchanged():
    assert expand_expression(PORT, {"validPort": "port > 0"}) == PORT


def test_empty_expression():
    assert expand_expression("", {"validPort": PORT}) == ""


def test_single_reference_is_wrapped_in_parens():
    assert expand_expression("${validPort}", {"validPort": PORT}) == f"({PORT})"


def test_multiple_references():
    got = expand_expression(
        "${validPort} && ${validType}", {"validPort": PORT, "validType": TYPE}
    )
    assert got == f"({PORT}) && ({TYPE})"


def test_nested_references():
    macros = {
        "validPort": PORT,
        "validType": TYPE,
        "validateService": "${validPort} && ${validType}",
        "validateAll": "${validateService} && has(values.replicas)",
    }
    got = expand_expression("${validateAll}", macros)
    assert got == f"((({PORT}) && ({TYPE})) && has(values.replicas))"


def test_reference_in_middle_of_expression():
    got = expand_expression(
        "has(values.service) && ${validPort} && has(values.replicas)", {"validPort": PORT}
    )
    assert got == f"has(values.service) && ({PORT}) && has(values.replicas)"


def test_identical_references_expand_independently():
    got = expand_expression("${validPort} && ${validPort}", {"validPort": PORT})
    assert got == f"({PORT}) && ({PORT})"


def test_direct_cycle():
    with pytest.raises(CircularReferenceError) as e:
        expand_expression("${a}", {"a": "${a}"})
    assert str(e.value) == "circular reference detected in expression: ${a}"


def test_indirect_cycle_names_original_expression():
    with pytest.raises(CircularReferenceError) as e:
        expand_expression("has(values.x) && ${a}", {"a": "${b}", "b": "${c}", "c": "${a}"})
    assert e.value.expression == "has(values.x) && ${a}"


def test_cycle_with_parameters_is_still_circular():
    with pytest.raises(CircularReferenceError):
        expand_expression("${f(values.x)}", {"f": "${g($0)}", "g": "${f($0)}"})


def test_undefined_reference():
    with pytest.raises(UndefinedReferenceError) as e:
        expand_expression("${undefinedRef}", {"validPort": PORT})
    assert str(e.value) == "undefined reference in expression: ${undefinedRef}"


def test_undefined_reference_with_no_macros():
    with pytest.raises(UndefinedReferenceError):
        expand_expression("${validPort}", {})
    with pytest.raises(UndefinedReferenceError):
        expand_expression("${validPort}", None)


def test_undefined_reference_cites_occurrence_with_arguments():
    with pytest.raises(UndefinedReferenceError) as e:
        expand_expression("${ok} && ${nope(values.a, 1)}", {"ok": "true"})
    assert e.value.occurrence == "${nope(values.a, 1)}"


def test_unclosed_reference_is_reported():
    with pytest.raises(UndefinedReferenceError) as e:
        expand_expression("${unclosed", {"unclosed": PORT})
    assert str(e.value) == "undefined reference in expression: ${unclosed"


def test_unclosed_reference_after_valid_one_is_reported():
    with pytest.raises(UndefinedReferenceError):
        expand_expression("${a} && ${broken", {"a": "true", "broken": "false"})


def test_complex_nested_expression_keeps_raw_strings():
    macros = {
        "memoryPattern": 'matches(string(value), r"^[0-9]+(Mi|Gi)$")',
        "cpuPattern": 'matches(string(value), r"^[0-9]+m$")',
        "validateResources": "has(values.resources.requests) && has(values.resources.limits)"
        " && ${memoryPattern} && ${cpuPattern}",
    }
    got = expand_expression("${validateResources}", macros)
    assert got == (
        "(has(values.resources.requests) && has(values.resources.limits)"
        ' && (matches(string(value), r"^[0-9]+(Mi|Gi)$"))'
        ' && (matches(string(value), r"^[0-9]+m$")))'
    )


def test_single_positional_parameter():
    assert expand_expression("${hasField(values.foo.bar)}", {"hasField": "has($0)"}) == (
        "(has(values.foo.bar))"
    )


def test_same_macro_different_arguments():
    got = expand_expression(
        "${hasField(values.foo.bar)} && ${hasField(values.baz.qux)}", {"hasField": "has($0)"}
    )
    assert got == "(has(values.foo.bar)) && (has(values.baz.qux))"


def test_multiple_parameters():
    got = expand_expression(
        "${inRange(values.port, 1, 65535)}", {"inRange": "$0 >= $1 && $0 <= $2"}
    )
    assert got == "(values.port >= 1 && values.port <= 65535)"


def test_parameter_used_twice():
    got = expand_expression(
        "${hasField(values.resources.requests.memory)}", {"hasField": "has($0) && $0 != ''"}
    )
    assert got == (
        "(has(values.resources.requests.memory) && values.resources.requests.memory != '')"
    )


def test_parameterized_macro_calling_parameterized_macro():
    macros = {
        "portRange": "$0 >= 1 && $0 <= 65535",
        "validatePort": "has($0) && ${portRange($0)}",
    }
    got = expand_expression("${validatePort(values.service.port)}", macros)
    assert got == (
        "(has(values.service.port) && "
        "(values.service.port >= 1 && values.service.port <= 65535))"
    )


def test_argument_with_nested_call():
    assert expand_expression("${f(size(values.items))}", {"f": "$0 > 0"}) == (
        "(size(values.items) > 0)"
    )


def test_argument_with_list_literal():
    got = expand_expression(
        "${matchesAny(values.type, ['ClusterIP', 'NodePort', 'LoadBalancer'])}",
        {"matchesAny": "$0 in $1"},
    )
    assert got == "(values.type in ['ClusterIP', 'NodePort', 'LoadBalancer'])"


def test_argument_with_quoted_comma_and_paren():
    got = expand_expression("${eq(values.name, 'a,b)')}", {"eq": "$0 == $1"})
    assert got == "(values.name == 'a,b)')"


def test_bare_reference_keeps_placeholders():
    assert expand_expression("${needsParam}", {"needsParam": "has($0)"}) == "(has($0))"


def test_empty_argument_list_is_arity_error():
    with pytest.raises(ParameterArityError) as e:
        expand_expression("${hasField()}", {"hasField": "has($0)"})
    assert str(e.value) == (
        "failed to replace parameters in hasField: "
        "expression requires parameters but none were provided"
    )


def test_too_few_arguments():
    with pytest.raises(ParameterArityError) as e:
        expand_expression("${inRange(values.port, 1)}", {"inRange": "$0 >= $1 && $0 <= $2"})
    assert e.value.reason == ParameterArityError.TOO_FEW


def test_placeholder_ten_is_not_placeholder_one():
    body = " ".join("$%d" % i for i in range(11))
    args = ", ".join(f"a{i}" for i in range(11))
    got = expand_expression("${f(" + args + ")}", {"f": body})
    assert got == "(" + " ".join(f"a{i}" for i in range(11)) + ")"


def test_mixed_bare_and_parameterized():
    got = expand_expression(
        "${validPort} && ${hasField(values.service.type)}",
        {"validPort": PORT, "hasField": "has($0)"},
    )
    assert got == f"({PORT}) && (has(values.service.type))"


def test_expanding_expanded_text_is_identity():
    macros = {"inRange": "$0 >= $1 && $0 <= $2"}
    once = expand_expression("${inRange(values.port, 1, 65535)}", macros)
    assert expand_expression(once, macros) == once


def test_find_references_positions():
    refs = find_references("a ${x} b ${y(1, (2))} c")
    assert [r.name for r in refs] == ["x", "y"]
    assert refs[1].text == "${y(1, (2))}"
    assert refs[1].args == "(1, (2))"


def test_split_arguments():
    assert split_arguments("()") == []
    assert split_arguments("(a, f(b, c), [d, e], 'x,y', \"p,q\")") == [
        "a",
        "f(b, c)",
        "[d, e]",
        "'x,y'",
        '"p,q"',
    ]
    assert split_arguments(r"(a\,b, c)") == [r"a\,b", "c"]


def test_expand_rules_keeps_order_and_severity():
    rs = RuleSet(
        rules=(
            Rule("${p}", "first"),
            Rule("values.x > 0", "second", Severity.WARNING),
        ),
        macros={"p": PORT},
    )
    out = expand_rules(rs)
    assert [r.expression for r in out.rules] == [f"({PORT})", "values.x > 0"]
    assert out.rules[1].severity is Severity.WARNING
    # input untouched
    assert rs.rules[0].expression == "${p}"


def test_expand_rules_names_failing_rule():
    rs = RuleSet(rules=(Rule("${missing}", "needs macro"),), macros={})
    with pytest.raises(RuleExpansionError) as e:
        expand_rules(rs)
    assert str(e.value) == (
        "failed to expand rule 'needs macro': undefined reference in expression: ${missing}"
    )
    assert isinstance(e.value.cause, UndefinedReferenceError)
