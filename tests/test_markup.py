import pytest

from vpub.markup import convert


def test_horizontal_rule():
    assert convert("----", True) == "<hr>"


@pytest.mark.parametrize("level", [1, 2, 3, 4, 5])
def test_heading_is_shifted_one_level(level):
    assert convert("#" * level + "Title", True) == f"<h{level + 1}>Title</h{level + 1}>"


def test_too_deep_heading_is_dropped():
    assert convert("######Title", True) == ""


def test_only_hashes_is_dropped():
    assert convert("###", True) == ""


def test_paragraph_wrapping():
    assert convert("hello", True) == "<p>hello</p>"
    assert convert("hello", False) == "hello"


def test_empty_lines_are_skipped():
    assert convert("a\n\nb", False) == "a\nb"


def test_crlf_same_as_lf():
    assert convert("a\r\n* b\r\nc", True) == convert("a\n* b\nc", True)


def test_html_is_escaped():
    result = convert("<script>", False)
    assert "<script>" not in result
    assert "&lt;script&gt;" in result


def test_bold():
    assert convert("**hi**", False) == "<b>hi</b>"


def test_italics():
    assert convert("*hi*", False) == "<i>hi</i>"


def test_strikethrough():
    assert convert("~~gone~~", False) == "<s>gone</s>"


def test_code():
    assert convert("`x`", False) == "<code>x</code>"


def test_link():
    assert convert("[text](/path)", False) == '<a href="/path" target="_blank">text</a>'


def test_image():
    assert convert("![alt](/img.png)", False) == '<img src="/img.png" alt="alt"/>'


def test_bare_url_is_linked():
    url = "https://example.com/page"
    assert convert("see " + url, False) == f'see <a href="{url}" target="_blank">{url}</a>'


def test_bullets_form_one_list():
    assert convert("* a\n* b", True) == "<ul>\n<li>a</li>\n<li>b</li>\n</ul>"


def test_list_closed_before_paragraph():
    assert convert("* a\ntext", True) == "<ul>\n<li>a</li>\n</ul>\n<p>text</p>"


def test_bullet_items_are_decorated():
    assert convert("* **x**", True) == "<ul>\n<li><b>x</b></li>\n</ul>"


def test_blockquote():
    assert convert("> quote", True) == "<blockquote>quote</blockquote>"


def test_blockquote_is_escaped_not_decorated():
    result = convert("> <b> **x**", True)
    assert "&lt;b&gt;" in result
    assert "**x**" in result


def test_preformatted_block_is_not_decorated():
    assert convert("```\n**raw**\n```", True) == "<pre>\n**raw**\n</pre>"


def test_preformatted_block_is_escaped():
    result = convert("```\n<tag>\n```", True)
    assert result.startswith("<pre>")
    assert "<tag>" not in result


def test_table_structure():
    result = convert("| a | b |\n| --- | --- |\n| 1 | 2 |\n", True)
    assert result.startswith("<table><thead><tr>")
    assert result.endswith("</tbody></table>")
    assert result.count("<tr>") == 2
    assert "align=" not in result


def test_table_centered_column():
    result = convert("| a | b |\n| :---: | --- |\n| 1 | 2 |\n", True)
    assert result.count('align="center"') == 2
    assert 'align="right"' not in result


def test_table_right_aligned_column():
    result = convert("| a | b |\n| --- | ---: |\n| 1 | 2 |\n", True)
    assert result.count('align="right"') == 2


def test_table_closed_at_end_without_newline():
    result = convert("| a | b |\n| --- | --- |\n| 1 | 2 |", True)
    assert result.endswith("</tbody></table>")
    assert result.count("<table>") == 1