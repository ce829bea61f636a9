"""ContentFilter behaviour tests."""

from bulletin.models.moderation import FilterAction
from bulletin.modules.moderation.content_filter import ContentFilter, strip_html
from bulletin.modules.moderation.policy import DEFAULT_BANNED_WORDS, ModerationPolicy

# ==================== strip_html ====================


def test_strip_html_removes_tags_and_collapses_whitespace():
    """Tags become spaces and runs of whitespace collapse."""
    assert strip_html("<p>Hello</p>\n<p>  world</p>") == "Hello world"


def test_strip_html_decodes_basic_entities():
    """Only the common entities are decoded."""
    assert strip_html("a&nbsp;&amp;&nbsp;b &lt;tag&gt; &quot;q&quot;") == 'a & b <tag> "q"'


def test_strip_html_handles_empty_input():
    assert strip_html(None) == ""
    assert strip_html("") == ""


# ==================== check ====================


def test_check_matches_whole_words_case_insensitively():
    """'spam' matches SPAM but not 'spammer'."""
    content_filter = ContentFilter(["spam"])

    assert content_filter.check("This is SPAM!").has_banned_words is True
    assert content_filter.check("a spammer wrote this").has_banned_words is False


def test_check_censors_with_asterisks_of_same_length():
    content_filter = ContentFilter(["spam", "scam"])

    result = content_filter.check("Spam and scam")

    assert result.matches == ["spam", "scam"]
    assert result.filtered == "**** and ****"


def test_check_escapes_regex_metacharacters():
    """Banned words are literals, not patterns."""
    content_filter = ContentFilter(["c.a"])

    assert content_filter.check("cba").has_banned_words is False
    assert content_filter.check("say c.a now").has_banned_words is True


def test_disabled_filter_passes_everything():
    content_filter = ContentFilter(["viagra"], enabled=False)

    result = content_filter.apply("buy viagra now")

    assert result.allowed is True
    assert result.text == "buy viagra now"
    assert result.flagged is False


# ==================== apply ====================


def test_apply_censor_rewrites_raw_html():
    """Censoring keeps the markup and replaces the word inside it."""
    content_filter = ContentFilter(["viagra"], FilterAction.CENSOR)

    result = content_filter.apply("<p>buy <b>Viagra</b> now</p>")

    assert result.allowed is True
    assert result.text == "<p>buy <b>******</b> now</p>"
    assert result.flagged is False


def test_apply_block_rejects_and_names_word():
    content_filter = ContentFilter(["viagra"], FilterAction.BLOCK)

    result = content_filter.apply("buy viagra now")

    assert result.allowed is False
    assert "viagra" in result.reason


def test_apply_flag_keeps_text_and_flags():
    content_filter = ContentFilter(["casino"], FilterAction.FLAG)

    result = content_filter.apply("<p>best casino deals</p>")

    assert result.allowed is True
    assert result.flagged is True
    assert result.text == "<p>best casino deals</p>"
    assert "casino" in result.reason


def test_apply_clean_content_is_untouched():
    content_filter = ContentFilter(["viagra"], FilterAction.BLOCK)

    result = content_filter.apply("<p>A perfectly normal post</p>")

    assert result.allowed is True
    assert result.text == "<p>A perfectly normal post</p>"
    assert result.reason is None


def test_apply_plain_filters_titles():
    content_filter = ContentFilter(["scam"], FilterAction.CENSOR)

    assert content_filter.apply_plain("Is this a scam?").text == "Is this a ****?"


# ==================== from_policy ====================


def test_from_policy_uses_defaults_when_banned_words_empty():
    """An empty banned-word setting falls back to the built-in list."""
    policy = ModerationPolicy(banned_words="")

    content_filter = ContentFilter.from_policy(policy)

    assert policy.banned_word_list == DEFAULT_BANNED_WORDS
    assert content_filter.apply("free bitcoin for everyone").text == "************ for everyone"


def test_from_policy_parses_comma_separated_words():
    policy = ModerationPolicy(banned_words=" Foo , ,bar ", filter_action=FilterAction.BLOCK)

    content_filter = ContentFilter.from_policy(policy)

    assert policy.banned_word_list == ["foo", "bar"]
    assert content_filter.apply("FOO fighters").allowed is False
