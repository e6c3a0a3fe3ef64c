"""Tests for ShowRepository (Discover feed and filter options)."""
import pytest

from tvbingefriend_feed_service.models import FetchRequest, FilterState, SortOption
from tvbingefriend_feed_service.repos import ShowRepository


@pytest.fixture
def show_repo(rest_client):
    return ShowRepository(rest_client)


@pytest.fixture
def mock_genres(rest_url, requests_mock):
    return requests_mock.get(f"{rest_url}/genres", json=[{'id': 5, 'name': 'Action'}, {'id': 18, 'name': 'Drama'}])


def _shows_requests(requests_mock, rest_url):
    return [r for r in requests_mock.request_history if r.path == '/rest/v1/shows']


class TestBuildQueryParams:
    """Tests for build_query_params."""

    def test_pushes_down_discovery_and_year_range(self, show_repo):
        # Arrange
        request = FetchRequest(
            limit=20,
            offset=40,
            sort_by=SortOption.BEST_RATED,
            filters=FilterState.create(year_range=(2000, 2010)),
            show_in_discovery=True,
        )

        # Act
        params = dict()
        for key, value in show_repo.build_query_params(request, 20):
            params.setdefault(key, []).append(value)

        # Assert
        assert params['show_in_discovery'] == ['eq.true']
        assert params['first_air_date'] == ['gte.2000-01-01', 'lte.2010-12-31']
        assert params['order'] == ['our_score.desc.nullslast']
        assert params['limit'] == [20]
        assert params['offset'] == [40]

    def test_no_discovery_flag_or_years(self, show_repo):
        params = dict(show_repo.build_query_params(FetchRequest(), 20))

        assert 'show_in_discovery' not in params
        assert 'first_air_date' not in params
        assert params['order'] == 'first_air_date.desc.nullslast'


class TestFetchShows:
    """Tests for fetch_shows."""

    def test_unfiltered_page(self, show_repo, make_show_row, rest_url, requests_mock, mock_genres):
        # Arrange
        rows = [make_show_row(f'tt{i}') for i in range(1, 21)]
        requests_mock.get(f"{rest_url}/shows", json=rows)

        # Act
        result = show_repo.fetch_shows(FetchRequest(limit=20, show_in_discovery=True))

        # Assert
        assert result.ok
        assert len(result.items) == 20
        assert result.has_more is True
        assert result.next_offset == 20
        assert result.items[0].genre_names == ['Drama']
        assert _shows_requests(requests_mock, rest_url)[0].qs['limit'] == ['20']

    def test_sparse_genre_filter_returns_only_matches(self, show_repo, make_show_row, rest_url, requests_mock, mock_genres):
        """Only 3 of the first 100 raw rows have genre 5: those 3 come back, nothing padded."""
        # Arrange
        rows = [
            make_show_row(f'tt{i}', genre_ids=[5, 18] if i in (7, 42, 99) else [18])
            for i in range(1, 101)
        ]
        requests_mock.get(f"{rest_url}/shows", json=rows)
        request = FetchRequest(limit=20, offset=0, sort_by=SortOption.LATEST,
                               filters=FilterState.create(genre_ids=[5]), show_in_discovery=True)

        # Act
        result = show_repo.fetch_shows(request)

        # Assert
        assert result.ok
        assert [s.imdb_id for s in result.items] == ['tt7', 'tt42', 'tt99']
        assert result.has_more is True
        assert result.next_offset == 100
        assert _shows_requests(requests_mock, rest_url)[0].qs['limit'] == ['100']

    def test_has_more_false_when_raw_batch_short(self, show_repo, make_show_row, rest_url, requests_mock, mock_genres):
        # Arrange
        rows = [make_show_row(f'tt{i}', genre_ids=[5] if i == 3 else [18]) for i in range(1, 61)]
        requests_mock.get(f"{rest_url}/shows", json=rows)

        # Act
        result = show_repo.fetch_shows(FetchRequest(limit=20, filters=FilterState.create(genre_ids=[5])))

        # Assert
        assert [s.imdb_id for s in result.items] == ['tt3']
        assert result.has_more is False
        assert result.next_offset == 60

    def test_offset_advances_by_raw_batch_size(self, show_repo, make_show_row, rest_url, requests_mock, mock_genres):
        """next_offset sums raw batch sizes, not filtered counts."""
        # Arrange
        first = [make_show_row(f'tt{i}', genre_ids=[5] if i % 10 == 0 else [18]) for i in range(1, 101)]
        second = [make_show_row(f'tt{i}', genre_ids=[5] if i % 25 == 0 else [18]) for i in range(101, 201)]
        requests_mock.get(f"{rest_url}/shows", [{'json': first}, {'json': second}])
        filters = FilterState.create(genre_ids=[5])

        # Act
        page1 = show_repo.fetch_shows(FetchRequest(limit=20, offset=0, filters=filters))
        page2 = show_repo.fetch_shows(FetchRequest(limit=20, offset=page1.next_offset, filters=filters))

        # Assert
        assert len(page1.items) == 10
        assert len(page2.items) == 4
        assert page1.next_offset == 100
        assert page2.next_offset == 200
        assert _shows_requests(requests_mock, rest_url)[1].qs['offset'] == ['100']

    def test_streamer_filter(self, show_repo, make_show_row, rest_url, requests_mock, mock_genres):
        # Arrange
        rows = [
            make_show_row('tt1', streaming_info={'US': [{'provider_id': 9, 'provider_name': 'Prime Video'}]}),
            make_show_row('tt2'),
        ]
        requests_mock.get(f"{rest_url}/shows", json=rows)

        # Act
        result = show_repo.fetch_shows(FetchRequest(limit=20, filters=FilterState.create(streamer_ids=[9])))

        # Assert
        assert [s.imdb_id for s in result.items] == ['tt1']
        assert _shows_requests(requests_mock, rest_url)[0].qs['limit'] == ['200']

    def test_excludes_user_shows(self, show_repo, make_show_row, rest_url, requests_mock, mock_genres):
        # Arrange
        requests_mock.get(f"{rest_url}/user_shows", json=[{'imdb_id': 'tt2'}])
        requests_mock.get(f"{rest_url}/shows", json=[make_show_row(f'tt{i}') for i in range(1, 4)])

        # Act
        result = show_repo.fetch_shows(FetchRequest(limit=20, exclude_user_shows=True, user_id='user-1'))

        # Assert
        assert [s.imdb_id for s in result.items] == ['tt1', 'tt3']
        assert _shows_requests(requests_mock, rest_url)[0].qs['limit'] == ['36']

    def test_exclusion_failure_fails_open(self, show_repo, make_show_row, rest_url, requests_mock, mock_genres):
        """A failing exclusion lookup still returns the unfiltered batch."""
        # Arrange
        requests_mock.get(f"{rest_url}/user_shows", status_code=500)
        requests_mock.get(f"{rest_url}/shows", json=[make_show_row(f'tt{i}') for i in range(1, 4)])

        # Act
        result = show_repo.fetch_shows(FetchRequest(limit=20, exclude_user_shows=True, user_id='user-1'))

        # Assert
        assert result.ok
        assert [s.imdb_id for s in result.items] == ['tt1', 'tt2', 'tt3']
        assert _shows_requests(requests_mock, rest_url)[0].qs['limit'] == ['20']

    def test_remote_error_is_returned_not_raised(self, show_repo, rest_url, requests_mock):
        # Arrange
        requests_mock.get(f"{rest_url}/shows", status_code=503, text='unavailable')

        # Act
        result = show_repo.fetch_shows(FetchRequest(limit=20, offset=40))

        # Assert
        assert not result.ok
        assert result.error.status_code == 503
        assert result.items == []
        assert result.next_offset == 40


class TestCountDiscoverable:
    """Tests for count_discoverable."""

    def test_counts_discovery_shows(self, show_repo, rest_url, requests_mock):
        requests_mock.head(f"{rest_url}/shows", headers={'Content-Range': '0-0/321'})

        assert show_repo.count_discoverable() == 321
        assert requests_mock.last_request.qs['show_in_discovery'] == ['eq.true']


class TestFilterOptions:
    """Tests for filter option lookups."""

    @pytest.fixture
    def mock_shows_options(self, rest_url, requests_mock):
        def shows_callback(request, context):
            if 'streaming_info' in request.qs['select'][0]:
                return [
                    {'imdb_id': 'tt1', 'streaming_info': {'US': [{'provider_id': 8, 'provider_name': 'Netflix'}]}},
                    {'imdb_id': 'tt2', 'streaming_info': {'US': [
                        {'provider_id': 9, 'provider_name': 'Amazon Prime Video'},
                        {'provider_id': 4242, 'provider_name': 'Local TV'},
                    ]}},
                ]
            if request.qs['order'] == ['first_air_date.asc']:
                return [{'first_air_date': '1999-01-10'}]
            return [{'first_air_date': '2024-09-01'}]

        return requests_mock.get(f"{rest_url}/shows", json=shows_callback)

    def test_fetch_filter_options(self, show_repo, mock_genres, mock_shows_options):
        # Act
        options, error = show_repo.fetch_filter_options()

        # Assert
        assert error is None
        assert [g['name'] for g in options['genres']] == ['Action', 'Drama']
        assert options['year_range'] == [1999, 2024]
        assert options['streamers'] == [{'id': 9, 'name': 'Amazon Prime'}, {'id': 8, 'name': 'Netflix'}]

    def test_year_range_falls_back_on_error(self, show_repo, rest_url, requests_mock):
        # Arrange
        requests_mock.get(f"{rest_url}/shows", status_code=500)

        # Act
        year_range, error = show_repo.fetch_year_range()

        # Assert
        assert year_range[0] == 2000
        assert error is not None

    def test_partial_failure_reports_error(self, show_repo, rest_url, requests_mock, mock_shows_options):
        # Arrange
        requests_mock.get(f"{rest_url}/genres", status_code=500)

        # Act
        options, error = show_repo.fetch_filter_options()

        # Assert
        assert options['genres'] == []
        assert options['year_range'] == [1999, 2024]
        assert error is not None
