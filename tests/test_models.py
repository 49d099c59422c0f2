"""Tests for parsing raw conversation data into models."""

import unittest

from models import (
    BlockFormat,
    ContentKind,
    ConversationRecord,
    ExportOptions,
    MessageContent,
    MissingMappingError,
    PatchOperation,
    PendingCanvasUpdate,
    PendingScope,
    RenderableBlock,
)


class TestMessageContent(unittest.TestCase):
    def test_parts_only(self):
        """Test content with only string parts is a parts variant."""
        content = MessageContent.from_dict({'content_type': 'text', 'parts': ['a', 'b']})

        self.assertIs(content.kind, ContentKind.TEXT_PARTS)
        self.assertEqual(content.plain_text(), 'a\nb')

    def test_non_string_parts_are_ignored(self):
        """Test dictionaries inside parts do not leak into plain text."""
        content = MessageContent.from_dict({'parts': ['a', {'x': 1}, None, 'b']})

        self.assertEqual(content.plain_text(), 'a\nb')

    def test_code_payload(self):
        """Test code content keeps its raw text."""
        content = MessageContent.from_dict({'content_type': 'code', 'text': '{"content": "x"}'})

        self.assertIs(content.kind, ContentKind.CODE)
        self.assertEqual(content.text, '{"content": "x"}')

    def test_multimodal_images(self):
        """Test image pointers and prompts are collected from multimodal parts."""
        content = MessageContent.from_dict({
            'content_type': 'multimodal_text',
            'parts': [
                'caption',
                {'content_type': 'image_asset_pointer', 'asset_pointer': 'file-service://f1',
                 'metadata': {'dalle': {'prompt': 'a cat'}}},
                {'content_type': 'image_asset_pointer', 'asset_pointer': 'file-service://f2', 'metadata': None},
                {'content_type': 'audio_asset_pointer', 'asset_pointer': 'file-service://f3'},
            ],
        })

        self.assertIs(content.kind, ContentKind.MULTIMODAL)
        self.assertEqual([image.asset_pointer for image in content.images], ['file-service://f1', 'file-service://f2'])
        self.assertEqual(content.images[0].prompt, 'a cat')
        self.assertIsNone(content.images[1].prompt)

    def test_missing_content(self):
        """Test absent content yields an empty parts variant."""
        content = MessageContent.from_dict(None)

        self.assertIs(content.kind, ContentKind.TEXT_PARTS)
        self.assertEqual(content.plain_text(), '')


class TestConversationRecord(unittest.TestCase):
    def test_missing_mapping(self):
        """Test records without a mapping are rejected."""
        with self.assertRaises(MissingMappingError):
            ConversationRecord.from_dict({'title': 'x'})
        with self.assertRaises(MissingMappingError):
            ConversationRecord.from_dict({'mapping': None})

    def test_mapping_key_is_node_id(self):
        """Test node ids come from mapping keys, not embedded ids."""
        record = ConversationRecord.from_dict({'mapping': {'key-1': {'id': 'other', 'children': []}}})

        self.assertEqual(record.mapping['key-1'].id, 'key-1')

    def test_conversation_id_falls_back_to_id(self):
        """Test the record identifier is read from either field."""
        record = ConversationRecord.from_dict({'id': 'abc', 'mapping': {'r': {}}})

        self.assertEqual(record.conversation_id, 'abc')

    def test_canvas_document_id_is_read_from_metadata(self):
        """Test tool messages expose their canvas document id."""
        record = ConversationRecord.from_dict({'mapping': {'r': {'message': {
            'author': {'role': 'tool'},
            'content': {'parts': ['']},
            'metadata': {'canvas': {'textdoc_id': 'doc-9'}},
        }}}})

        self.assertEqual(record.mapping['r'].message.canvas_document_id, 'doc-9')

    def test_empty_mapping_is_accepted(self):
        """Test an empty mapping parses and has no root."""
        record = ConversationRecord.from_dict({'title': 'T', 'mapping': {}})

        self.assertEqual(record.mapping, {})
        self.assertIsNone(record.find_root_id())

    def test_root_fallback_logs_warning(self):
        """Test a warning is logged when no node is parentless."""
        record = ConversationRecord.from_dict({'mapping': {'a': {'parent': 'b'}, 'b': {'parent': 'a'}}})

        with self.assertLogs('chatgpt_markdown_exporter.models', level='WARNING'):
            self.assertEqual(record.find_root_id(), 'a')


class TestCanvasModels(unittest.TestCase):
    def test_patch_defaults(self):
        """Test missing pattern and replacement take their defaults."""
        operation = PatchOperation.from_dict({})

        self.assertEqual((operation.pattern, operation.replacement, operation.multiple), ('.*', '', False))

    def test_patch_numbers_become_strings(self):
        """Test numeric pattern and replacement values are stringified."""
        operation = PatchOperation.from_dict({'pattern': 5, 'replacement': 0})

        self.assertEqual((operation.pattern, operation.replacement), ('5', '0'))

    def test_pending_update_fields(self):
        """Test create and update payloads map onto the pending update."""
        pending = PendingCanvasUpdate.from_dict({
            'name': 'doc', 'type': 'document', 'content': 'body', 'textdoc_id': 'doc-1',
            'updates': [{'pattern': 'a', 'replacement': 'b', 'multiple': True}, 'junk'],
        })

        self.assertEqual(pending.full_text, 'body')
        self.assertEqual(pending.document_id, 'doc-1')
        self.assertEqual(len(pending.updates), 1)
        self.assertTrue(pending.updates[0].multiple)
        self.assertFalse(pending.is_empty())
        self.assertTrue(PendingCanvasUpdate.from_dict({'name': 'x'}).is_empty())


class TestRenderableBlock(unittest.TestCase):
    def test_format_follows_role(self):
        """Test user blocks are fenced and everything else is plain."""
        self.assertIs(RenderableBlock(role='user', body='x').format, BlockFormat.FENCED)
        self.assertIs(RenderableBlock(role='assistant', body='x').format, BlockFormat.PLAIN)
        self.assertIs(RenderableBlock(role='tool', body='x').format, BlockFormat.PLAIN)


class TestExportOptions(unittest.TestCase):
    def test_from_config(self):
        """Test options are read from the export section."""
        options = ExportOptions.from_config({'export': {'all_roles': True, 'pending_scope': 'per_document'}})

        self.assertTrue(options.all_roles)
        self.assertIs(options.pending_scope, PendingScope.PER_DOCUMENT)
        self.assertEqual(options.filename_prefix, 'chatgpt')

    def test_from_empty_config(self):
        """Test defaults apply without an export section."""
        self.assertEqual(ExportOptions.from_config({}), ExportOptions())


if __name__ == '__main__':
    unittest.main()
