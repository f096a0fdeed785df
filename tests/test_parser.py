"""
Tests for extracting table metadata from mysqldump files
"""

import pytest

from grepdb.exceptions import ParserError, TokenizerError
from grepdb.sql_parser import Parser, is_create_table
from grepdb.sql_tokenizer import Token, TokenBundle, TokenType


def validate_table(table, database_name, table_name, engine, collation, charset, row_count, column_count):
    assert table.database_name == database_name
    assert table.table_name == table_name
    assert table.engine == engine
    assert table.collation == collation
    assert table.charset == charset
    assert table.row_count == row_count
    assert len(table.columns) == column_count


def validate_column(table, column_name, column_type, max_length, primary_key, nullable, indexed):
    assert table.has_column(column_name)
    column = table.get_column_metadata(column_name)

    assert column.database_name == table.database_name
    assert column.table_name == table.table_name
    assert column.column_name == column_name
    assert column.type == column_type
    assert column.max_length == max_length
    assert column.primary_key is primary_key
    assert column.nullable is nullable
    assert column.indexed is indexed


def validate_test_table_1(table, database_name):
    validate_table(table, database_name, 'test_table_1', 'InnoDB', 'DEFAULT', 'latin1', -1, 10)
    validate_column(table, 'test_pk', 'int(11)', None, True, False, True)
    validate_column(table, 'test_varchar', 'varchar(255)', 255, False, True, True)
    validate_column(table, 'test_text', 'text', 65535, False, True, False)
    validate_column(table, 'test_date', 'date', None, False, True, False)
    validate_column(table, 'test_unique', 'varchar(1024)', 1024, False, True, True)
    validate_column(table, 'test_decimal', 'decimal(10,2)', None, False, True, False)
    validate_column(table, 'test_float', 'float', None, False, True, False)
    validate_column(table, 'test_double', 'double', None, False, True, True)
    validate_column(table, 'test_blob', 'blob', 65535, False, True, False)
    validate_column(table, 'test_bigint', 'bigint(20)', None, False, True, False)


def validate_compound_pk_table(table, database_name):
    validate_table(table, database_name, 'test_table_compound_pk', 'InnoDB', 'DEFAULT', 'latin1', -1, 3)
    validate_column(table, 'column_1_pk', 'int(11)', None, True, False, True)
    validate_column(table, 'column_2_pk', 'int(11)', None, True, False, True)
    validate_column(table, 'column_data', 'varchar(512)', 512, False, True, False)


class TestParseDumpFiles:
    """Test parsing complete dump files"""

    @pytest.mark.unit
    def test_parse_single_table(self, data_dir):
        path = data_dir / 'single_table.sql'
        tables = list(Parser().parse_all_table_metadata(path))

        assert len(tables) == 1
        validate_test_table_1(tables[0], str(path))

    @pytest.mark.unit
    def test_parse_compound_primary_key(self, data_dir):
        path = data_dir / 'single_table_compound_pk.sql'
        tables = list(Parser().parse_all_table_metadata(path))

        assert len(tables) == 1
        validate_compound_pk_table(tables[0], str(path))

    @pytest.mark.unit
    def test_parse_two_tables(self, data_dir):
        path = data_dir / 'two_tables.sql'
        tables = list(Parser().parse_all_table_metadata(path))

        assert len(tables) == 2
        validate_test_table_1(tables[0], str(path))
        validate_compound_pk_table(tables[1], str(path))

    @pytest.mark.unit
    def test_parse_single_table_with_set_statements(self, data_dir):
        path = data_dir / 'single_table_includes_set_statements.sql'
        tables = list(Parser().parse_all_table_metadata(path))

        assert len(tables) == 1
        table = tables[0]
        validate_table(table, str(path), 'table_with_collation', 'InnoDB', 'utf8mb4_unicode_520_ci', 'utf8mb4', -1, 4)
        validate_column(table, 'item_id', 'bigint(20)', None, True, False, True)
        validate_column(table, 'comment_id', 'bigint(20)', None, False, False, True)
        validate_column(table, 'collate_varchar', 'varchar(255)', 255, False, True, True)
        validate_column(table, 'collate_text', 'longtext', None, False, True, False)

    @pytest.mark.unit
    def test_explicit_database_name(self, data_dir):
        tables = list(Parser().parse_all_table_metadata(data_dir / 'single_table.sql', 'wordpress'))
        assert tables[0].database_name == 'wordpress'
        assert tables[0].get_column_metadata('test_pk').database_name == 'wordpress'

    @pytest.mark.unit
    def test_columns_keep_source_order(self, data_dir):
        table = next(Parser().parse_all_table_metadata(data_dir / 'single_table_compound_pk.sql'))
        assert list(table.columns) == ['column_1_pk', 'column_2_pk', 'column_data']

    @pytest.mark.unit
    def test_missing_file_raises_immediately(self, tmp_path):
        with pytest.raises(TokenizerError):
            Parser().parse_all_table_metadata(tmp_path / 'nope.sql')


class TestParseStatements:
    """Test CREATE TABLE variations"""

    @pytest.mark.unit
    def test_column_charset_and_bit_default(self, tmp_path):
        sql_file = tmp_path / 'terms.sql'
        sql_file.write_text(
            'CREATE TABLE `wp_terms` (\n'
            '  `term_id` bigint(20) unsigned NOT NULL AUTO_INCREMENT,\n'
            '  `name` varchar(191) CHARACTER SET utf8mb4 COLLATE utf8mb4_bin NOT NULL,\n'
            '  `slug` varchar(200) CHARSET latin1 DEFAULT NULL,\n'
            "  `hidden` bit(1) NOT NULL DEFAULT b'0',\n"
            '  PRIMARY KEY (`term_id`),\n'
            '  KEY `name` (`name`(191))\n'
            ') ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_520_ci;\n',
            encoding='utf-8',
        )

        table = next(Parser().parse_all_table_metadata(sql_file, 'wordpress'))

        validate_table(table, 'wordpress', 'wp_terms', 'InnoDB', 'utf8mb4_unicode_520_ci', 'utf8mb4', -1, 4)
        validate_column(table, 'term_id', 'bigint(20)', None, True, False, True)
        validate_column(table, 'name', 'varchar(191)', 191, False, False, True)
        validate_column(table, 'slug', 'varchar(200)', 200, False, True, False)
        validate_column(table, 'hidden', 'bit(1)', None, False, False, False)

    @pytest.mark.unit
    def test_if_not_exists_and_foreign_keys(self, tmp_path):
        sql_file = tmp_path / 'orders.sql'
        sql_file.write_text(
            'CREATE TABLE IF NOT EXISTS `orders` (\n'
            '  `id` int(11) NOT NULL,\n'
            '  `code` char(8) NOT NULL,\n'
            '  `customer_id` int(11) DEFAULT NULL,\n'
            '  `notes` json DEFAULT NULL,\n'
            '  PRIMARY KEY (`id`),\n'
            '  KEY `customer_id` (`customer_id`),\n'
            '  CONSTRAINT `orders_ibfk_1` FOREIGN KEY (`customer_id`) REFERENCES `customers` (`id`) ON DELETE CASCADE\n'
            ') ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_general_ci;\n',
            encoding='utf-8',
        )

        table = next(Parser().parse_all_table_metadata(sql_file, 'shop'))

        validate_table(table, 'shop', 'orders', 'InnoDB', 'utf8mb4_general_ci', 'utf8mb4', -1, 4)
        validate_column(table, 'id', 'int(11)', None, True, False, True)
        validate_column(table, 'code', 'char(8)', 8, False, False, False)
        validate_column(table, 'customer_id', 'int(11)', None, False, True, True)
        validate_column(table, 'notes', 'json', None, False, True, False)

    @pytest.mark.unit
    def test_table_without_options_uses_defaults(self, tmp_path):
        sql_file = tmp_path / 'bare.sql'
        sql_file.write_text('CREATE TABLE `bare` (`name` varchar(20));\n', encoding='utf-8')

        table = next(Parser().parse_all_table_metadata(sql_file, 'db'))

        validate_table(table, 'db', 'bare', 'DEFAULT', 'DEFAULT', 'DEFAULT', -1, 1)
        assert table.get_primary_key_metadata() is None

    @pytest.mark.unit
    def test_column_without_data_type_raises(self, tmp_path):
        sql_file = tmp_path / 'broken.sql'
        sql_file.write_text('CREATE TABLE `broken` (`x` NOT NULL);\n', encoding='utf-8')

        with pytest.raises(ParserError, match='has no data type'):
            list(Parser().parse_all_table_metadata(sql_file))

    @pytest.mark.unit
    def test_other_statements_are_skipped(self, tmp_path):
        sql_file = tmp_path / 'no_tables.sql'
        sql_file.write_text(
            'CREATE DATABASE `wp`;\nUSE `wp`;\nDROP TABLE IF EXISTS `t`;\n',
            encoding='utf-8',
        )
        assert list(Parser().parse_all_table_metadata(sql_file)) == []

    @pytest.mark.unit
    def test_is_create_table(self):
        create = TokenBundle('', [Token(TokenType.KEYWORD, 'CREATE'), Token(TokenType.KEYWORD, 'TABLE'),
                                  Token(TokenType.QUOTED_IDENTIFIER, 't')])
        database = TokenBundle('', [Token(TokenType.KEYWORD, 'CREATE'), Token(TokenType.KEYWORD, 'DATABASE'),
                                    Token(TokenType.QUOTED_IDENTIFIER, 'wp')])

        assert is_create_table(create)
        assert not is_create_table(database)
        assert not is_create_table(TokenBundle('-- comment'))
