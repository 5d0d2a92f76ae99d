"""
VIN Decoder Service - NHTSA API Integration

Uses the free NHTSA (National Highway Traffic Safety Administration) API
to decode VIN and retrieve vehicle information.

API Documentation: https://vpic.nhtsa.dot.gov/api/
"""
import logging
import re
import httpx
from typing import Dict, Optional

from nags_lookup.core.config import settings
from nags_lookup.schemas.lookup import VehicleInfo

logger = logging.getLogger(__name__)

# 17 characters, no I/O/Q
VIN_RE = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")


class VINDecoderService:
    """Service for decoding VINs using NHTSA API"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = settings.NHTSA_API_URL
        self.timeout = settings.VIN_DECODER_TIMEOUT
        self._transport = transport

    async def decode(self, vin: str) -> Optional[VehicleInfo]:
        """
        Decode VIN using NHTSA API.

        Args:
            vin: Vehicle Identification Number (17 characters)

        Returns:
            Decoded vehicle, or None if the VIN is invalid or cannot be decoded
        """
        normalized = (vin or "").strip().upper()
        if not VIN_RE.match(normalized):
            logger.info(f"VIN DECODER: Rejected malformed VIN '{normalized}'")
            return None

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.api_url.format(vin=normalized))
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"VIN DECODER: NHTSA request failed for {normalized}: {e}")
            return None

        return self._parse_nhtsa_response(normalized, data)

    def _parse_nhtsa_response(self, vin: str, data: Dict) -> Optional[VehicleInfo]:
        """
        Parse NHTSA API response.

        NHTSA returns data in format:
        {
            "Results": [
                {"Variable": "Make", "Value": "HONDA"},
                {"Variable": "Model", "Value": "Accord"},
                ...
            ]
        }
        """
        results = data.get("Results", [])

        # Create a dictionary for easy lookup
        vehicle_data = {
            item["Variable"]: item["Value"]
            for item in results
            if item.get("Value") and item["Value"] != "Not Applicable"
        }

        year_str = vehicle_data.get("Model Year")
        year = int(year_str) if year_str and year_str.isdigit() else None
        make = vehicle_data.get("Make")

        if not make or not year:
            logger.info(f"VIN DECODER: NHTSA could not decode {vin}")
            return None

        return VehicleInfo(
            vin=vin,
            vin_pattern=vin[:11],
            year=year,
            make=make,
            model=vehicle_data.get("Model") or "Unknown",
            trim=vehicle_data.get("Trim"),
            body_style=vehicle_data.get("Body Class"),
        )


# Singleton instance
vin_decoder_service = VINDecoderService()
