"""
Tests for searching and replacing inside PHP serialized data
"""

import phpserialize
import pytest

from grepdb import serialized
from grepdb.exceptions import SerializedDataError


class TestContainsCount:
    """Occurrence counting inside string leaves"""

    @pytest.mark.unit
    def test_counts_plain_serialized_string(self):
        assert serialized.contains_count('s:19:"foo bar baz bat foo";', 'foo') == 2

    @pytest.mark.unit
    def test_property_names_are_not_counted(self):
        """An object with a property named foo holding 'foo bar' contains foo once"""
        data = 'O:8:"stdClass":1:{s:3:"foo";s:7:"foo bar";}'
        assert serialized.contains_count(data, 'foo') == 1

    @pytest.mark.unit
    def test_array_keys_and_class_names_are_not_counted(self):
        data = 'a:1:{s:8:"stdClass";O:8:"stdClass":1:{s:3:"bar";s:3:"baz";}}'
        assert serialized.contains_count(data, 'stdClass') == 0
        assert serialized.contains_count(data, 'baz') == 1

    @pytest.mark.unit
    def test_numeric_and_boolean_leaves_are_not_counted(self):
        data = 'a:3:{i:0;i:42;i:1;d:42.5;i:2;b:1;}'
        assert serialized.contains_count(data, '42') == 0
        assert serialized.contains_count(data, '1') == 0

    @pytest.mark.unit
    def test_nested_structures(self, sample_php_serialized_data):
        assert serialized.contains_count(sample_php_serialized_data['nested_array'], 'World') == 1
        assert serialized.contains_count(sample_php_serialized_data['object'], 'foo') == 1

    @pytest.mark.unit
    def test_scalars_contain_nothing(self, sample_php_serialized_data):
        for key in ('boolean_true', 'boolean_false', 'integer', 'null'):
            assert serialized.contains_count(sample_php_serialized_data[key], 'a') == 0

    @pytest.mark.unit
    def test_empty_term_counts_zero(self):
        assert serialized.contains_count('s:3:"foo";', '') == 0

    @pytest.mark.unit
    def test_accepts_bytes(self):
        assert serialized.contains_count(b's:3:"foo";', b'oo') == 1

    @pytest.mark.unit
    def test_custom_serialized_payload_is_not_searched(self):
        data = 'C:11:"ArrayObject":21:{x:i:0;a:0:{};m:a:0:{}}'
        assert serialized.contains_count(data, 'x') == 0


class TestReplace:
    """Replacement with recomputed length prefixes"""

    @pytest.mark.unit
    def test_replace_changes_string_length_prefix(self, sample_php_serialized_data):
        result = serialized.replace(sample_php_serialized_data['simple_string'], 'World', 'Universe')
        assert result == 's:14:"Hello Universe";'

    @pytest.mark.unit
    def test_replace_in_flat_object(self):
        data = 'O:8:"stdClass":2:{s:3:"foo";s:3:"foo";s:3:"bar";s:3:"bar";}'
        assert serialized.replace(data, 'foo', 'baz') == 'O:8:"stdClass":2:{s:3:"foo";s:3:"baz";s:3:"bar";s:3:"bar";}'

    @pytest.mark.unit
    def test_replace_in_nested_object(self):
        data = 'O:8:"stdClass":3:{s:3:"foo";s:3:"foo";s:3:"bar";s:3:"bar";s:3:"bat";O:8:"stdClass":1:{s:3:"baz";s:3:"baz";}}'
        expected = 'O:8:"stdClass":3:{s:3:"foo";s:3:"foo";s:3:"bar";s:3:"bar";s:3:"bat";O:8:"stdClass":1:{s:3:"baz";s:3:"qux";}}'
        assert serialized.replace(data, 'baz', 'qux') == expected

    @pytest.mark.unit
    def test_private_property_names_of_unknown_class_are_kept(self):
        data = 'O:14:"NotAKnownClass":2:{s:19:"\x00NotAKnownClass\x00foo";s:3:"foo";s:19:"\x00NotAKnownClass\x00bar";s:3:"bar";}'
        expected = 'O:14:"NotAKnownClass":2:{s:19:"\x00NotAKnownClass\x00foo";s:3:"foo";s:19:"\x00NotAKnownClass\x00bar";s:3:"bat";}'
        assert serialized.replace(data, 'bar', 'bat') == expected

    @pytest.mark.unit
    def test_lengths_are_utf8_byte_lengths(self):
        assert serialized.replace('s:5:"hello";', 'e', 'é') == 's:6:"héllo";'
        assert serialized.replace('s:6:"héllo";', 'é', 'e') == 's:5:"hello";'

    @pytest.mark.unit
    def test_replace_returns_bytes_for_bytes(self):
        assert serialized.replace(b's:3:"foo";', 'foo', 'quux') == b's:4:"quux";'

    @pytest.mark.unit
    def test_references_and_enums_are_kept_verbatim(self):
        data = 'a:3:{i:0;s:3:"foo";i:1;r:2;i:2;E:11:"Suit:Hearts";}'
        assert serialized.replace(data, 'foo', 'fooo') == 'a:3:{i:0;s:4:"fooo";i:1;r:2;i:2;E:11:"Suit:Hearts";}'

    @pytest.mark.unit
    def test_round_trip_without_replacement(self, sample_php_serialized_data):
        for data in sample_php_serialized_data.values():
            assert serialized.encode(serialized.decode(data)).decode('utf-8') == data

    @pytest.mark.unit
    def test_replace_is_idempotent_once_term_is_gone(self):
        data = 'a:2:{s:3:"url";s:22:"http://old.example.com";s:4:"list";a:1:{i:0;s:26:"see http://old.example.com";}}'
        replaced = serialized.replace(data, 'http://old.example.com', 'https://new.example.org')
        assert serialized.contains_count(replaced, 'http://old.example.com') == 0
        assert serialized.contains_count(replaced, 'https://new.example.org') == 2

    @pytest.mark.unit
    def test_float_forms_are_accepted(self):
        for value in ('d:0.5;', 'd:-1.0E+25;', 'd:INF;', 'd:-INF;', 'd:NAN;'):
            assert serialized.is_serialized(value)


class TestPhpserializeCompatibility:
    """Cross-check against the phpserialize implementation"""

    @pytest.mark.unit
    def test_replaced_output_loads_in_phpserialize(self):
        data = phpserialize.dumps({'name': 'Hello World', 'tags': ['World', 'peace'], 'count': 3})

        result = serialized.replace(data, 'World', 'Wörld and more')

        loaded = phpserialize.loads(result, decode_strings=True)
        assert loaded['name'] == 'Hello Wörld and more'
        assert loaded['tags'] == {0: 'Wörld and more', 1: 'peace'}
        assert loaded['count'] == 3

    @pytest.mark.unit
    def test_counts_match_phpserialize_structure(self):
        data = phpserialize.dumps({'World': 'World World', 'other': {'World': 1}})
        assert serialized.contains_count(data, 'World') == 2

    @pytest.mark.unit
    def test_decode_accepts_phpserialize_output(self):
        data = phpserialize.dumps([1, 2.5, True, None, 'text', {'k': 'v'}])
        assert serialized.encode(serialized.decode(data)) == data


class TestMalformedData:
    """Malformed input raises SerializedDataError"""

    @pytest.mark.unit
    @pytest.mark.parametrize('data', [
        '',
        'regular string',
        's:999:"Hello";',
        's:5:"Hello"',
        'a:2:{s:4:"name";s:4:"John";}',
        'a:1:{d:1.5;s:1:"x";}',
        'b:2;',
        'i:12a;',
        'i:1;trailing',
        'x:1;',
        'O:8:"stdClass":1:{s:3:"foo";s:3:"bar";',
    ])
    def test_decode_errors(self, data):
        with pytest.raises(SerializedDataError):
            serialized.decode(data)

    @pytest.mark.unit
    def test_error_reports_offset(self):
        with pytest.raises(SerializedDataError) as excinfo:
            serialized.decode('a:1:{i:0;x:1;}')
        assert excinfo.value.offset == 9
        assert 'at offset 9' in str(excinfo.value)

    @pytest.mark.unit
    def test_replace_propagates_decode_errors(self):
        with pytest.raises(SerializedDataError):
            serialized.replace('not serialized', 'not', 'very')

    @pytest.mark.unit
    def test_is_serialized(self, sample_php_serialized_data):
        assert serialized.is_serialized(sample_php_serialized_data['simple_array'])
        assert not serialized.is_serialized('{"json": "data"}')


class TestEditor:
    """Editor object used by the serialized strategy"""

    @pytest.mark.unit
    def test_editor_delegates(self):
        editor = serialized.Editor()
        assert editor.contains_count('s:3:"foo";', 'foo') == 1
        assert editor.replace('s:3:"foo";', 'foo', 'ba') == 's:2:"ba";'
