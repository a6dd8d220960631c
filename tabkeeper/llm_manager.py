import logging
import os
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI
from tabkeeper.config import Settings, get_settings

logger = logging.getLogger(__name__)

def create_llm(settings: Settings = None):
    settings = settings or get_settings()
    provider = settings.LLM_PROVIDER.lower()
    model = settings.MODEL_NAME

    if provider == "gemini":
        gemini_model = model if model and model.startswith("gemini") else "gemini-flash-latest"
        sa_file = settings.GEMINI_SERVICE_ACCOUNT_FILE
        if sa_file and os.path.exists(sa_file):
            from google.oauth2 import service_account
            credentials = service_account.Credentials.from_service_account_file(sa_file)
            logger.info(f"Using Gemini with service account from {sa_file}")
            return ChatGoogleGenerativeAI(
                model=gemini_model,
                credentials=credentials,
                temperature=settings.TEMPERATURE,
                max_output_tokens=settings.MAX_NEW_TOKENS,
            )

        if settings.GEMINI_API_KEY:
            logger.info("Using Gemini with API key")
            return ChatGoogleGenerativeAI(
                model=gemini_model,
                google_api_key=settings.GEMINI_API_KEY,
                temperature=settings.TEMPERATURE,
                max_output_tokens=settings.MAX_NEW_TOKENS,
            )

        raise ValueError("Gemini provider selected, but no API key or service account file provided.")

    if provider == "openai":
        if not settings.OPENAI_API_KEY:
            raise ValueError("OpenAI provider selected, but OPENAI_API_KEY is not set.")
        logger.info(f"Using OpenAI model {model}")
        return ChatOpenAI(
            model=model,
            api_key=settings.OPENAI_API_KEY,
            temperature=settings.TEMPERATURE,
            max_tokens=settings.MAX_NEW_TOKENS,
        )

    if provider == "ollama":
        logger.info(f"Using Ollama model {model}")
        return ChatOllama(
            base_url=settings.OLLAMA_BASE_URL,
            model=model,
            temperature=settings.TEMPERATURE,
            num_predict=settings.MAX_NEW_TOKENS,
        )

    raise ValueError(f"Unsupported LLM provider: {provider}")
