"""Google Sheets REST client: read a rectangular range of cell values."""

from urllib.parse import quote

from .google_http import GoogleAPIClient


class SheetsClient(GoogleAPIClient):
    """Sheets API v4 values reader."""

    service = 'sheets'
    base_url = 'https://sheets.googleapis.com/v4/spreadsheets/'

    async def read_values(self, spreadsheet_id: str, cell_range: str) -> list[list[str]]:
        """
        Read formatted cell values for an A1 range.

        Trailing empty cells are omitted by the API, so rows may be ragged.
        """
        body = await self.get_json(
            f'{spreadsheet_id}/values/{quote(cell_range, safe="!:")}',
            params={'majorDimension': 'ROWS'},
        )
        return body.get('values', []) or []
