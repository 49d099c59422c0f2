"""Tests for Markdown document assembly."""

import unittest
from datetime import datetime

from exporters.markdown_renderer import MarkdownRenderer, format_local_datetime, to_datetime
from models import BlockFormat, ExportOptions, RenderableBlock


class TestMarkdownRenderer(unittest.TestCase):
    def setUp(self):
        self.renderer = MarkdownRenderer()

    def test_user_block_is_fenced(self):
        """Test user messages are wrapped in a code fence under a USER heading."""
        markdown = self.renderer.render([RenderableBlock(role='user', body='hello')], title='T')

        self.assertTrue(markdown.startswith('# T\n'))
        self.assertIn('### USER\n```\nhello\n```\n', markdown)

    def test_assistant_block_is_plain(self):
        """Test assistant text is emitted verbatim without a fence."""
        markdown = self.renderer.render([RenderableBlock(role='assistant', body='**bold** reply')], title='T')

        self.assertIn('### ASSISTANT\n**bold** reply\n', markdown)
        self.assertNotIn('```', markdown)

    def test_blocks_are_separated_by_rules(self):
        """Test every block ends with a horizontal rule."""
        blocks = [RenderableBlock(role='user', body='q'), RenderableBlock(role='assistant', body='a')]
        markdown = self.renderer.render(blocks, title='T')

        self.assertEqual(markdown.count('\n---\n'), 2)
        self.assertLess(markdown.index('### USER'), markdown.index('### ASSISTANT'))

    def test_other_roles_use_parenthesized_label(self):
        """Test non-chat roles are labeled with their upper-cased role in parentheses."""
        markdown = self.renderer.render([RenderableBlock(role='tool', body='output')], title='T')

        self.assertIn('### (TOOL)', markdown)

    def test_blank_title_uses_placeholder(self):
        """Test a missing or blank title falls back to the placeholder."""
        self.assertTrue(self.renderer.render([], title=None).startswith('# Untitled'))
        self.assertTrue(self.renderer.render([], title='   ').startswith('# Untitled'))

        custom = MarkdownRenderer(ExportOptions(untitled_placeholder='No title'))
        self.assertTrue(custom.render([], title='').startswith('# No title'))

    def test_header_shows_created_and_updated(self):
        """Test the header line lists creation and update times in local time."""
        created = datetime(2024, 1, 2, 3, 4, 5).timestamp()
        updated = datetime(2024, 1, 3, 3, 4, 5).timestamp()

        markdown = self.renderer.render([], title='T', create_time=created, update_time=updated)

        self.assertIn('created: 2024-01-02 03:04:05 / updated: 2024-01-03 03:04:05', markdown)

    def test_header_omits_missing_times(self):
        """Test no time line is emitted when neither timestamp is present."""
        self.assertEqual(self.renderer.render([], title='T'), '# T')

    def test_epoch_zero_is_a_real_timestamp(self):
        """Test a creation time of 0 is rendered rather than treated as absent."""
        markdown = self.renderer.render([], title='T', create_time=0)

        self.assertIn('created: ', markdown)

    def test_block_timestamps_only_when_enabled(self):
        """Test per-block timestamps appear only with show_timestamps."""
        stamp = datetime(2024, 5, 6, 7, 8, 9).timestamp()
        block = RenderableBlock(role='assistant', body='reply', timestamp=stamp)

        hidden = self.renderer.render([block], title='T')
        shown = MarkdownRenderer(ExportOptions(show_timestamps=True)).render([block], title='T')

        self.assertNotIn('(2024-05-06 07:08:09)', hidden)
        self.assertIn('### ASSISTANT\n(2024-05-06 07:08:09)\n\nreply', shown)

    def test_quoted_format_prefixes_lines(self):
        """Test quoted blocks prefix every line with a quote marker."""
        block = RenderableBlock(role='assistant', body='one\n\ntwo')
        block.format = BlockFormat.QUOTED

        markdown = self.renderer.render([block], title='T')

        self.assertIn('> one\n>\n> two', markdown)


class TestTimestampParsing(unittest.TestCase):
    def test_epoch_seconds(self):
        """Test numeric epochs, including fractional and string forms."""
        expected = datetime.fromtimestamp(1700000000.5)
        self.assertEqual(to_datetime(1700000000.5), expected)
        self.assertEqual(to_datetime('1700000000.5'), expected)

    def test_iso_string(self):
        """Test naive ISO 8601 strings are parsed as-is."""
        self.assertEqual(to_datetime('2024-02-03T04:05:06'), datetime(2024, 2, 3, 4, 5, 6))

    def test_unparseable_values(self):
        """Test bad values yield None and an empty formatted string."""
        self.assertIsNone(to_datetime('not a date'))
        self.assertIsNone(to_datetime(None))
        self.assertIsNone(to_datetime(True))
        self.assertEqual(format_local_datetime('garbage'), '')


if __name__ == '__main__':
    unittest.main()
