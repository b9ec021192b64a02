"""
Tests for the command-line interface.
"""

import json

import pytest

from kinmerge.ui.cli import main, parse_resolutions
from kinmerge.core.exceptions import ValidationError


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / 'cli.db')


@pytest.fixture
def family_file(tmp_path):
    document = {
        "family": {"id": "fam-1", "name": "Smith family"},
        "people": [
            {"id": "p1", "given_name": "John", "surname": "Smith", "gender": "M",
             "birth_date": "1950-01-01", "birth_place": "Springfield", "bio": ""},
            {"id": "p2", "given_name": "Jon", "surname": "Smith", "gender": "M",
             "birth_date": "1950-01-01", "birth_place": "Springfield", "bio": "Loved fishing."},
        ],
        "stories": [{"story_id": "story-1", "person_id": "p2"}],
    }
    path = tmp_path / 'family.json'
    path.write_text(json.dumps(document), encoding='utf-8')
    return str(path)


class TestCLI:
    """Tests for kinmerge commands."""

    def test_no_command_prints_help(self, capsys):
        """Test that running without a command shows help."""
        assert main([]) == 0
        assert 'usage: kinmerge' in capsys.readouterr().out

    def test_init(self, db_path, capsys):
        """Test creating a database."""
        assert main(['--db', db_path, 'init']) == 0
        assert 'Database ready' in capsys.readouterr().out

    def test_import_scan_merge(self, db_path, family_file, capsys):
        """Test a full import, scan, merge and resolve session."""
        assert main(['--db', db_path, 'import', family_file]) == 0
        assert 'Imported family fam-1' in capsys.readouterr().out

        assert main(['--db', db_path, 'scan', 'fam-1']) == 0
        out = capsys.readouterr().out
        assert 'Scan (full) of family fam-1' in out
        assert 'exact_birthdate' in out

        assert main(['--db', db_path, 'merge', '--winner', 'p1', '--loser', 'p2',
                     '--actor', 'alice', '--resolve', 'bio=keep_loser']) == 0
        assert 'Merged person p2 into p1' in capsys.readouterr().out

        assert main(['--db', db_path, 'resolve', 'p2']) == 0
        assert capsys.readouterr().out.strip() == 'p1'

        assert main(['--db', db_path, 'history', 'fam-1']) == 0
        assert 'p2 -> p1 by alice' in capsys.readouterr().out

    def test_errors_exit_nonzero(self, db_path, family_file, capsys):
        """Test that engine errors are reported on stderr."""
        main(['--db', db_path, 'import', family_file])
        capsys.readouterr()

        assert main(['--db', db_path, 'scan', 'nope']) == 1
        assert 'Family not found' in capsys.readouterr().err

        assert main(['--db', db_path, 'merge', '--winner', 'p1', '--loser', 'p1',
                     '--actor', 'alice']) == 1
        assert 'Error:' in capsys.readouterr().err

    def test_missing_import_file(self, db_path, tmp_path, capsys):
        """Test importing a file that does not exist."""
        assert main(['--db', db_path, 'import', str(tmp_path / 'missing.json')]) == 1
        assert 'File not found' in capsys.readouterr().err

    def test_history_empty(self, db_path, family_file, capsys):
        """Test history with no merges."""
        main(['--db', db_path, 'import', family_file])
        capsys.readouterr()
        assert main(['--db', db_path, 'history', 'fam-1']) == 0
        assert 'No merges.' in capsys.readouterr().out

    def test_stats(self, db_path, family_file, capsys):
        """Test listing families and record counts."""
        main(['--db', db_path, 'import', family_file])
        capsys.readouterr()

        assert main(['--db', db_path, 'stats']) == 0
        out = capsys.readouterr().out
        assert 'Families: 1' in out
        assert 'fam-1  Smith family' in out
        assert 'persons: 2' in out
        assert 'story_links: 1' in out
        assert 'merges: 0' in out


class TestParseResolutions:
    """Tests for FIELD=CHOICE parsing."""

    def test_parse(self):
        """Test parsing resolution arguments."""
        assert parse_resolutions(['bio=keep_loser', ' tags = union ']) == {
            'bio': 'keep_loser', 'tags': 'union',
        }
        assert parse_resolutions(None) == {}

    def test_malformed(self):
        """Test that malformed arguments raise ValidationError."""
        with pytest.raises(ValidationError):
            parse_resolutions(['bio'])
