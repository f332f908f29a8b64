from pathlib import Path

import pytest

from convoscript.core.evaluator import evaluate
from convoscript.core.exceptions import ConfigurationError, ParseError, ScopeLookupError, UnknownToolError
from convoscript.core.loop import ACCEPTED, REVIEW_PROMPT
from convoscript.core.scope import Scope
from convoscript.tools import BUILTIN_HANDLERS


def sent_messages(mock_client, call: int = -1) -> list[dict]:
    return mock_client.chat.completions.create.call_args_list[call].kwargs["messages"]


class TestPrompt:
    def test_binds_answer(self, context, answers, prompts):
        answers.append("tides")
        scope = evaluate('<script><p user="Which topic?" store="topic"/></script>', context)
        assert scope.lookup("topic") == "tides"
        assert prompts == ["Which topic?"]

    def test_prompt_text_is_interpolated(self, context, answers, prompts):
        answers.extend(["tides", "moon"])
        evaluate('<script><p user="Topic?" store="topic"/><p user="Why $topic?" store="why"/></script>', context)
        assert prompts == ["Topic?", "Why tides?"]

    def test_prompt_defaults_to_store_name(self, context, answers, prompts):
        answers.append("x")
        evaluate('<script><p store="name"/></script>', context)
        assert prompts == ["name"]

    def test_enclosing_scope(self, context, answers):
        answers.append("x")
        outer = Scope(bindings={"given": 1})
        scope = evaluate('<script><p user="q" store="topic"/></script>', context, scope=outer)
        assert scope.lookup("given") == 1
        assert "topic" not in outer.bindings


class TestChat:
    def test_response(self, context, mock_client, answers, make_text_completion):
        answers.append("tides")
        mock_client.chat.completions.create.side_effect = [make_text_completion("Tides are caused by the moon.")]
        source = """
        <script>
            <p user="Topic?" store="topic"/>
            <chat>
                <system>
                    You are a helpful assistant.
                </system>
                <user>Explain $topic briefly.</user>
                <response/>
            </chat>
        </script>
        """

        evaluate(source, context)

        assert sent_messages(mock_client) == [
            {"role": "system", "content": "You are a helpful assistant."},
            {"role": "user", "content": "Explain tides briefly."},
        ]
        assert "tools" not in mock_client.chat.completions.create.call_args.kwargs

    def test_messages_render_when_reached(self, context, mock_client, answers, make_text_completion):
        answers.append("late")
        mock_client.chat.completions.create.side_effect = [make_text_completion("ok")]
        source = """
        <script>
            <chat>
                <user>Value: $value</user>
                <p user="Value?" store="value"/>
                <user>Now: $value</user>
                <response/>
            </chat>
        </script>
        """

        scope = evaluate(source, context)

        assert [m["content"] for m in sent_messages(mock_client)] == ["Value: $value", "Now: late"]
        # chat bindings stay inside the chat block
        assert "value" not in scope.bindings

    def test_tool_routed_to_builtin(self, context, mock_client, answers, make_tool_completion, make_text_completion):
        context = context.with_handlers(BUILTIN_HANDLERS)
        answers.append("About the ocean")
        mock_client.chat.completions.create.side_effect = [
            make_tool_completion(("c1", "question", {"input": "Which body of water?"})),
            make_text_completion("Thanks!"),
        ]
        source = """
        <script>
            <chat>
                <user>Help me write about water.</user>
                <tool name="question" action="ask" d="Ask the user a clarifying question"/>
                <response/>
            </chat>
        </script>
        """

        evaluate(source, context)

        first_kwargs = mock_client.chat.completions.create.call_args_list[0].kwargs
        assert first_kwargs["tools"][0]["function"]["name"] == "question"
        assert first_kwargs["tool_choice"] == "auto"
        assert sent_messages(mock_client)[-1]["content"] == "About the ocean"

    def test_blank_answer_in_message(self, context, mock_client, answers, make_text_completion):
        answers.append("")
        mock_client.chat.completions.create.side_effect = [make_text_completion("Nothing to add.")]
        source = '<script><p user="Notes?" store="notes"/><chat><user>$notes</user><response/></chat></script>'

        scope = evaluate(source, context)

        assert scope.lookup("notes") == ""
        assert sent_messages(mock_client) == [{"role": "user", "content": ""}]

    def test_tool_without_handler(self, context, mock_client, make_tool_completion):
        mock_client.chat.completions.create.side_effect = [make_tool_completion(("c1", "lookup", {"input": "x"}))]
        source = """
        <script>
            <chat>
                <user>Hi</user>
                <tool name="lookup" action="search"/>
                <response/>
            </chat>
        </script>
        """

        with pytest.raises(UnknownToolError):
            evaluate(source, context)


class TestGen:
    def test_generates_value(self, context, mock_client, make_tool_completion):
        mock_client.chat.completions.create.side_effect = [
            make_tool_completion(("c1", "ideas", {"input": [{"title": "Tides"}, {"title": "Orbits"}]}))
        ]
        source = """
        <script>
            <gen store="ideas" array="object" d="Ideas worth writing about">
                <system>You are an editor.</system>
                <user>Suggest ideas.</user>
                <p name="title"/>
            </gen>
        </script>
        """

        scope = evaluate(source, context)

        assert scope.lookup("ideas") == [{"title": "Tides"}, {"title": "Orbits"}]
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "function", "function": {"name": "ideas"}}
        assert kwargs["tools"][0]["function"]["parameters"]["required"] == ["input"]
        assert mock_client.chat.completions.create.call_count == 1

    def test_feedback_accepted(self, context, mock_client, answers, prompts, make_tool_completion):
        mock_client.chat.completions.create.side_effect = [make_tool_completion(("c1", "title", {"input": "Tides"}))]
        answers.append("")
        source = """
        <script>
            <gen store="title">
                <user>Suggest a title.</user>
                <feedback/>
            </gen>
        </script>
        """

        scope = evaluate(source, context)

        assert scope.lookup("title") == "Tides"
        assert prompts == [REVIEW_PROMPT]

    def test_feedback_revision(self, context, mock_client, answers, make_tool_completion):
        mock_client.chat.completions.create.side_effect = [
            make_tool_completion(("c1", "title", {"input": "Tides"})),
            make_tool_completion(("c2", "title", {"input": "The Pull of the Moon"})),
        ]
        answers.extend(["more poetic", ""])
        source = '<script><gen store="title"><user>Suggest a title.</user><feedback/></gen></script>'

        scope = evaluate(source, context)

        assert scope.lookup("title") == "The Pull of the Moon"
        second = sent_messages(mock_client)
        assert second[-1] == {"role": "tool", "content": "more poetic", "tool_call_id": "c1", "name": "title"}
        assert ACCEPTED not in [m.get("content") for m in second]

    def test_no_value(self, context, mock_client, make_text_completion, caplog):
        mock_client.chat.completions.create.side_effect = [make_text_completion("I'd rather not")]
        source = '<script><gen store="title"><user>Suggest a title.</user></gen></script>'

        scope = evaluate(source, context)

        assert "title" not in scope.bindings
        assert "finished without producing a value" in caplog.text

    def test_no_value_with_existing_binding(self, context, mock_client, answers, make_text_completion, caplog):
        answers.append("Working title")
        mock_client.chat.completions.create.side_effect = [make_text_completion("I'd rather not")]
        source = '<script><p user="Title?" store="title"/><gen store="title"><user>Improve $title.</user></gen></script>'

        scope = evaluate(source, context)

        assert scope.lookup("title") == "Working title"
        assert "finished without producing a value" in caplog.text


class TestEach:
    @pytest.fixture
    def records(self):
        return [{"title": "Tides"}, {"title": "Orbits"}, {"title": "Eclipses"}]

    def test_records_updated_in_place(self, context, mock_client, records, make_tool_completion):
        mock_client.chat.completions.create.side_effect = [
            make_tool_completion((f"c{i}", "outline", {"sections": [f"section {i}"]})) for i in range(3)
        ]
        originals = list(records)
        source = """
        <script>
            <each store="outline" from="ideas">
                <user>Outline an article titled "$title".</user>
                <p name="sections" array="string"/>
            </each>
        </script>
        """

        scope = evaluate(source, context, scope=Scope(bindings={"ideas": records}))

        assert all(a is b for a, b in zip(scope.lookup("ideas"), originals))
        assert [r["outline"] for r in records] == [{"sections": [f"section {i}"]} for i in range(3)]
        assert [sent_messages(mock_client, i)[0]["content"] for i in range(3)] == [
            'Outline an article titled "Tides".',
            'Outline an article titled "Orbits".',
            'Outline an article titled "Eclipses".',
        ]
        assert "outline" not in scope.bindings

    def test_record_fields_shadow_outer(self, context, mock_client, make_tool_completion):
        mock_client.chat.completions.create.side_effect = [make_tool_completion(("c1", "blurb", {"input": "x"}))]
        source = '<script><each store="blurb" from="ideas"><user>$title for $audience</user></each></script>'
        outer = Scope(bindings={"title": "outer", "audience": "kids", "ideas": [{"title": "inner"}]})

        evaluate(source, context, scope=outer)

        assert sent_messages(mock_client)[0]["content"] == "inner for kids"

    def test_missing_source(self, context, mock_client):
        source = '<script><each store="outline" from="ideas"><user>Outline $title</user></each></script>'
        with pytest.raises(ScopeLookupError, match="'ideas' is not bound"):
            evaluate(source, context)
        mock_client.chat.completions.create.assert_not_called()

    @pytest.mark.parametrize("value", ["not records", 42, [{"title": "ok"}, "bad"]])
    def test_source_not_records(self, context, value):
        source = '<script><each store="outline" from="ideas"><user>Outline $title</user></each></script>'
        with pytest.raises(ScopeLookupError, match="expected a sequence of records"):
            evaluate(source, context, scope=Scope(bindings={"ideas": value}))

    def test_generated_records(self, context, mock_client, make_tool_completion):
        mock_client.chat.completions.create.side_effect = [
            make_tool_completion(("c1", "ideas", {"input": [{"title": "Tides"}, {"title": "Orbits"}]})),
            make_tool_completion(("c2", "summary", {"input": "one"})),
            make_tool_completion(("c3", "summary", {"input": "two"})),
        ]
        source = """
        <script>
            <gen store="ideas" array="object"><user>Ideas</user><p name="title"/></gen>
            <each store="summary" from="ideas"><user>Summarize $title</user></each>
        </script>
        """

        scope = evaluate(source, context)

        assert scope.lookup("ideas") == [{"title": "Tides", "summary": "one"}, {"title": "Orbits", "summary": "two"}]


class TestScriptHandling:
    def test_unknown_tags_skipped(self, context, answers):
        answers.append("x")
        scope = evaluate('<script><banner text="hi"/><p user="q" store="a"/></script>', context)
        assert scope.bindings == {"a": "x"}

    def test_comments_ignored(self, context, answers):
        answers.append("x")
        scope = evaluate('<script><!-- ask first --><p user="q" store="a"/></script>', context)
        assert scope.bindings == {"a": "x"}

    @pytest.mark.parametrize(
        ("source", "message"),
        [
            ('<script><p user="q"/></script>', "requires a 'store' attribute"),
            ("<script><gen><user>x</user></gen></script>", "requires a 'store' attribute"),
            ('<script><each store="a"><user>x</user></each></script>', "requires a 'from' attribute"),
            ('<script><gen store="a"><p name="x"/></gen></script>', "needs at least one system or user message"),
            ('<script><gen store="a"><user>   </user></gen></script>', "must not be empty"),
            ('<script><chat><tool d="x"/></chat></script>', "requires a 'name' attribute"),
        ],
    )
    def test_configuration_errors(self, context, source, message):
        with pytest.raises(ConfigurationError, match=message):
            evaluate(source, context)

    def test_errors_before_side_effects(self, context, answers, prompts):
        answers.append("x")
        source = '<script><p user="q" store="a"/><chat><user>Broken {{ oops</user></chat></script>'
        with pytest.raises(ParseError, match="Unterminated interpolation"):
            evaluate(source, context)
        assert prompts == []

    def test_malformed_markup(self, context):
        with pytest.raises(ParseError):
            evaluate("<script><p></script>", context)

    def test_script_file(self, context, answers, tmp_path: Path):
        answers.append("x")
        path = tmp_path / "script.xml"
        path.write_text('<script><p user="q" store="a"/></script>')
        assert evaluate(path, context).bindings == {"a": "x"}
