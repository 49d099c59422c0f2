"""Shared builders for conversation records and a fake API client."""

import json

import pytest


def make_message(role, parts=None, text=None, content_type='text', create_time=None,
                 canvas_id=None, raw_parts=None):
    """Build a raw backend message dictionary."""
    content = {'content_type': content_type}
    if raw_parts is not None:
        content['parts'] = raw_parts
    elif parts is not None:
        content['parts'] = parts
    if text is not None:
        content['text'] = text

    message = {'author': {'role': role}, 'content': content, 'create_time': create_time}
    if canvas_id:
        message['metadata'] = {'canvas': {'textdoc_id': canvas_id}}
    return message


def make_record(chain, title='T', create_time=None, update_time=None, conversation_id='conv-1'):
    """
    Build a raw record whose messages form a single chain under a root node.

    Args:
        chain: Ordered list of (node_id, message_dict_or_None)
    """
    mapping = {'root': {'parent': None, 'children': [], 'message': None}}
    parent = 'root'
    for node_id, message in chain:
        mapping[parent]['children'].append(node_id)
        mapping[node_id] = {'parent': parent, 'children': [], 'message': message}
        parent = node_id

    return {
        'title': title,
        'create_time': create_time,
        'update_time': update_time,
        'conversation_id': conversation_id,
        'mapping': mapping
    }


def canvas_announcement(**payload):
    """Assistant code message announcing a canvas edit."""
    return make_message('assistant', text=json.dumps(payload), content_type='code')


def canvas_apply(document_id):
    """Tool message signalling that the pending canvas edit is applied."""
    return make_message('tool', parts=[''], canvas_id=document_id)


def image_message(*pointers, role='tool', prompts=None, create_time=None):
    """Multimodal message holding image asset pointers."""
    parts = []
    for index, pointer in enumerate(pointers):
        part = {'content_type': 'image_asset_pointer', 'asset_pointer': pointer}
        if prompts and prompts[index]:
            part['metadata'] = {'dalle': {'prompt': prompts[index]}}
        parts.append(part)
    return make_message(role, raw_parts=parts, content_type='multimodal_text', create_time=create_time)


class FakeClient:
    """Stands in for ChatGPTClient's attachment methods."""

    def __init__(self, attachments=None):
        # file_id -> (metadata_dict, payload_bytes) or an Exception to raise
        self.attachments = attachments or {}
        self.metadata_calls = []
        self.download_calls = []

    def get_attachment_metadata(self, conversation_id, file_id):
        self.metadata_calls.append((conversation_id, file_id))
        entry = self.attachments[file_id]
        if isinstance(entry, Exception):
            raise entry
        return entry[0]

    def download_file(self, download_url, return_metadata=False):
        self.download_calls.append(download_url)
        for metadata, payload in (e for e in self.attachments.values() if not isinstance(e, Exception)):
            if metadata.get('download_url') == download_url:
                if isinstance(payload, Exception):
                    raise payload
                if return_metadata:
                    return payload, {'content_type': 'image/webp', 'content_length': len(payload)}
                return payload
        raise KeyError(download_url)


def signed_attachment(file_id, file_name=None, payload=b'IMG', signed=True):
    """Metadata/payload pair for FakeClient."""
    url = f"https://files.example.com/{file_id}?se=2030&sig=abc" if signed else f"https://files.example.com/{file_id}?se=2030"
    metadata = {'download_url': url}
    if file_name is not None:
        metadata['file_name'] = file_name
    return metadata, payload


@pytest.fixture
def fake_client():
    return FakeClient()
