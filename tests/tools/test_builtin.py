from convoscript.core.context import Feedback, Loop, NoOp
from convoscript.tools import BUILTIN_HANDLERS, ask, code


class TestAsk:
    def test_relays_question(self, context, answers, prompts):
        answers.append("Blue")
        action = ask({"input": "Favorite color?"}, context)
        assert action == Loop(content="Blue")
        assert prompts == ["Favorite color?"]

    def test_plain_string_arguments(self, context, answers, prompts):
        answers.append("Yes")
        assert ask("Ready?", context).content == "Yes"
        assert prompts == ["Ready?"]

    def test_missing_question(self, context, prompts):
        action = ask({}, context)
        assert isinstance(action, Loop)
        assert "requires an 'input' question" in action.content
        assert prompts == []


class TestCode:
    def test_incomplete_is_noop(self, context):
        arguments = {"code": "print('hi')", "complete": False}
        assert code(arguments, context) == NoOp(content=arguments)

    def test_complete_needs_review(self, context):
        arguments = {"code": "print('hi')", "complete": True}
        action = code(arguments, context)
        assert isinstance(action, Feedback)
        assert action.content == arguments


def test_builtin_handlers():
    assert BUILTIN_HANDLERS == {"ask": ask, "code": code}
