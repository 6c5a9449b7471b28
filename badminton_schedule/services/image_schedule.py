"""Schedule images: Gemini vision analysis and mapping to Training drafts."""

import logging
import os
from datetime import date
from typing import List, Optional, Sequence

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.messages import HumanMessage

from ..errors import IntegrationError
from ..models.channel import ChannelConfig
from ..models.training import ImageScheduleResult, Location, Training, canonical_type
from ..utils.normalization import (
    current_and_next_month,
    get_dates_for_day_in_month,
    is_valid_time,
    normalize_time_token,
)
from .field_extractors import lookup_location

logger = logging.getLogger(__name__)


SCHEDULE_IMAGE_PROMPT = """Проанализируй изображение расписания тренировок по бадминтону.

Извлеки локацию из заголовка изображения (например: М. Петроградская, Приморская)
и все тренировки в расписании. Для каждой тренировки укажи:
- type: тип тренировки (техника/игра/групповая/мини-игровая и т.д.)
- level: уровень ТОЧНО КАК НАПИСАНО в изображении (например: Б1-Б2, ВСЕ УРОВНИ, A-B)
- coach: тренер, если указан
- day: день недели на русском в нижнем регистре (понедельник, вторник, среда...)
- time_start: время начала в формате HH:MM
- time_end: время окончания в формате HH:MM (если есть)

ВАЖНО:
1. Уровни оставляй ТОЧНО как написано в изображении, НЕ преобразовывай и НЕ нормализуй!
2. Если уровень не указан, оставь null
3. Если на изображении нет расписания тренировок, верни пустой список trainings
4. Несколько тренировок в одно время (разные уровни) - это отдельные записи"""


class ScheduleImageAnalyzer:
    """Reads a weekly schedule image with Gemini and returns its structured content."""

    def __init__(self, api_key: Optional[str] = None, model: str = "gemini-2.5-flash"):
        """
        Initialize the analyzer.

        Args:
            api_key: Gemini API key (defaults to env var)
            model: Gemini model name
        """
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY not found")

        self.llm = ChatGoogleGenerativeAI(
            model=model,
            google_api_key=self.api_key,
            temperature=0.1
        )

    def analyze(self, image_url: str) -> ImageScheduleResult:
        """
        Extract the schedule shown on an image.

        Args:
            image_url: Public URL of the image

        Returns:
            ImageScheduleResult (trainings may be empty)

        Raises:
            IntegrationError: if the vision call fails
        """
        logger.info("Analyzing image: %s", image_url)

        message = HumanMessage(content=[
            {"type": "text", "text": SCHEDULE_IMAGE_PROMPT},
            {"type": "image_url", "image_url": {"url": image_url}},
        ])
        llm_with_structure = self.llm.with_structured_output(ImageScheduleResult)

        try:
            result = llm_with_structure.invoke([message])
        except Exception as e:
            raise IntegrationError(f"Vision analysis failed for {image_url}: {e}") from e

        if result is None:
            raise IntegrationError(f"Vision analysis returned no result for {image_url}")

        logger.info("Extracted %d trainings from image", len(result.trainings))
        return result


def map_image_schedule(
    result: ImageScheduleResult,
    message_id: str,
    channel_id: str,
    locations: Sequence[Location] = (),
    channel: Optional[ChannelConfig] = None,
    today: Optional[date] = None,
    raw_text: str = "",
) -> List[Training]:
    """
    Expand recurring weekly entries into dated drafts for the current and
    next month.

    Entries without a day or a start time are skipped. Entries sharing a
    day and time stay separate: the entry index is part of the message id.
    """
    location = lookup_location(result.location, locations)
    months = current_and_next_month(today)
    trainings: List[Training] = []

    for index, entry in enumerate(result.trainings):
        time_start = normalize_time_token(entry.time_start or "")
        if not entry.day or not time_start or not is_valid_time(time_start):
            logger.debug("Message %s: image entry %d has no day or start time, skipped", message_id, index)
            continue

        time_end = normalize_time_token(entry.time_end or "")
        if not is_valid_time(time_end):
            time_end = None

        day_name = entry.day.strip().lower()
        training_type = canonical_type(entry.type)

        coach = entry.coach or (channel.default_coach if channel else None)
        signup_url = channel.signup_url_for(training_type) if channel else None

        dates = []
        for year, month in months:
            dates.extend(get_dates_for_day_in_month(day_name, year, month))
        if not dates:
            logger.warning("Message %s: unknown day name %r in image entry %d", message_id, entry.day, index)
            continue

        for training_date in dates:
            trainings.append(Training(
                channel_id=channel_id,
                date=training_date,
                time_start=time_start,
                time_end=time_end,
                type=training_type,
                level=entry.level,
                coach=coach,
                location=location.name if location else None,
                location_id=(location.location_id or None) if location else None,
                signup_url=signup_url,
                title=training_type or "Тренировка",
                raw_text=raw_text,
                message_id=f"{message_id}_{day_name}_{time_start}_{index}",
            ))

    logger.info("Message %s: %d image entries -> %d trainings", message_id, len(result.trainings), len(trainings))
    return trainings
