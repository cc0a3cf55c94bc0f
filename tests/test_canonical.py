"""Unit tests for canonical definitions and category matching."""
import json
from unittest.mock import Mock, patch

import pytest
import requests

from conftest import make_event
from processor.canonical import (
    event_categories,
    is_exact_match,
    load_canonical_calendar,
    parse_canonical_document,
    scan_conflicts,
)


class TestLoadCanonicalCalendar:
    """Test cases for loading the definition document."""

    def test_bundled_document(self):
        calendar = load_canonical_calendar()

        assert calendar.version
        assert [d.id for d in calendar.definitions] == [
            'holiday-june-23-2025',
            'prekinder-meeting-june-24-2025',
            'year-meeting-july-2-2025',
        ]
        holiday = calendar.definitions[0]
        assert holiday.all_day is True
        assert holiday.category == 'holiday'
        assert holiday.start_date == '2025-06-23T00:00:00'

    def test_file_path(self, tmp_path):
        path = tmp_path / 'canonical.json'
        path.write_text(json.dumps({
            'version': '7',
            'definitions': [{
                'id': 'holiday',
                'title': 'Holiday',
                'start_date': '2025-09-18',
                'end_date': '2025-09-19',
                'all_day': True,
                'assigned_to': 'melody'
            }]
        }))

        calendar = load_canonical_calendar(str(path))

        assert calendar.version == '7'
        definition = calendar.definitions[0]
        assert definition.start_date == '2025-09-18T00:00:00'
        assert definition.category == 'holiday'

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ValueError):
            load_canonical_calendar(str(tmp_path / 'missing.json'))

    @patch('processor.canonical.requests.get')
    def test_url_source(self, mock_get):
        response = Mock()
        response.json.return_value = {'version': 'remote', 'definitions': []}
        mock_get.return_value = response

        calendar = load_canonical_calendar('https://example.com/canonical.json', timeout=5)

        mock_get.assert_called_once_with('https://example.com/canonical.json', timeout=5)
        assert calendar.version == 'remote'
        assert calendar.definitions == []

    @patch('processor.canonical.time.sleep')
    @patch('processor.canonical.requests.get')
    def test_url_source_retries_then_raises(self, mock_get, mock_sleep):
        mock_get.side_effect = requests.ConnectionError('down')

        with pytest.raises(requests.RequestException):
            load_canonical_calendar('https://example.com/canonical.json')

        assert mock_get.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]


class TestParseCanonicalDocument:
    """Test cases for document validation."""

    def _definition(self, **overrides):
        definition = {
            'id': 'd1',
            'title': 'Holiday',
            'start_date': '2025-06-23T00:00:00',
            'end_date': '2025-06-23T00:00:00',
            'all_day': True,
            'assigned_to': 'borja',
        }
        definition.update(overrides)
        return definition

    def test_missing_definitions(self):
        with pytest.raises(ValueError):
            parse_canonical_document({'version': '1'})

    def test_missing_field(self):
        definition = self._definition()
        del definition['title']

        with pytest.raises(ValueError):
            parse_canonical_document({'definitions': [definition]})

    def test_duplicate_ids(self):
        with pytest.raises(ValueError):
            parse_canonical_document({
                'definitions': [self._definition(), self._definition()]
            })

    def test_ambiguous_title_needs_explicit_category(self):
        document = {'definitions': [self._definition(title='Holiday year end party')]}

        with pytest.raises(ValueError):
            parse_canonical_document(document)

        document['definitions'][0]['category'] = 'holiday'
        calendar = parse_canonical_document(document)
        assert calendar.definitions[0].category == 'holiday'

    def test_end_before_start(self):
        with pytest.raises(ValueError):
            parse_canonical_document({'definitions': [
                self._definition(end_date='2025-06-22T00:00:00')
            ]})


class TestCategories:
    """Test cases for event categorization."""

    def test_explicit_tag_wins(self):
        event = make_event(title='Holiday year party', category='holiday')

        assert event_categories(event, ['holiday', 'year']) == {'holiday'}

    def test_keywords_match_whole_words(self):
        event = make_event(title='Yearbook photos')

        assert event_categories(event, ['holiday', 'year']) == set()

    def test_multiple_keywords(self):
        event = make_event(title='Holiday: end of year')

        assert event_categories(event, ['holiday', 'year']) == {'holiday', 'year'}


class TestScanConflicts:
    """Test cases for conflict classification."""

    def test_conflict_within_expanded_window(self, holiday_definition):
        events = [
            make_event('near', 'Holiday', '2025-06-18T00:00:00'),
            make_event('far', 'Holiday', '2025-08-01T00:00:00'),
            make_event('other', 'Dentist', '2025-06-23T10:00:00'),
            make_event('undated', 'Holiday', None),
        ]

        scan = scan_conflicts(events, holiday_definition)

        assert [e.event_id for e in scan.conflicts] == ['near']
        assert scan.ambiguous == []

    def test_ambiguous_event(self, holiday_definition):
        events = [make_event('amb', 'Holiday year party', '2025-06-23T00:00:00')]

        scan = scan_conflicts(events, holiday_definition)

        assert scan.conflicts == []
        assert [e.event_id for e in scan.ambiguous] == ['amb']

    def test_tagged_event_is_not_ambiguous(self, holiday_definition):
        events = [make_event('t', 'Holiday year party', '2025-06-23T00:00:00',
                             category='holiday')]

        scan = scan_conflicts(events, holiday_definition)

        assert [e.event_id for e in scan.conflicts] == ['t']


class TestExactMatch:
    """Test cases for is_exact_match."""

    def test_normalized_title_matches(self, holiday_definition):
        event = make_event('h', 'holiday!', '2025-06-23T00:00:00', all_day=True,
                           assigned_to='borja')

        assert is_exact_match(event, holiday_definition) is True

    def test_differences_break_match(self, holiday_definition):
        base = dict(start_date='2025-06-23T00:00:00', all_day=True, assigned_to='borja')

        assert not is_exact_match(make_event('h', 'Holiday', **{**base, 'all_day': False}),
                                  holiday_definition)
        assert not is_exact_match(make_event('h', 'Holiday', **{**base, 'assigned_to': 'mpaz'}),
                                  holiday_definition)
        assert not is_exact_match(
            make_event('h', 'Holiday', **{**base, 'start_date': '2025-06-24T00:00:00'}),
            holiday_definition
        )
        assert not is_exact_match(make_event('h', 'Holidays', **base), holiday_definition)
