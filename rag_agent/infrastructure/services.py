"""
Process-wide collaborator services.

The embedding model, chat model and vector store client are created once at
startup and injected into the agent graph, so tests can hand in doubles and
concurrent turns share nothing but these stateless services.
"""

import structlog
from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI, OpenAIEmbeddings

from rag_agent.infrastructure.config.settings import Settings
from rag_agent.infrastructure.errors import AppError, ErrorStep, classify_error
from rag_agent.infrastructure.observability.logging import agent_logger
from rag_agent.infrastructure.vectorstore.milvus_client import MilvusSearchService

logger = structlog.get_logger(__name__)


class AgentServices:
    """Holds the embedding, chat and search collaborators"""

    def __init__(
        self,
        embeddings: Embeddings,
        llm: BaseChatModel,
        search_service: MilvusSearchService
    ):
        self.embeddings = embeddings
        self.llm = llm
        self.search_service = search_service
        self.started = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "AgentServices":
        """Build the default OpenAI + Milvus collaborators"""

        try:
            llm = ChatOpenAI(
                model=settings.CHAT_MODEL,
                temperature=settings.CHAT_TEMPERATURE,
                api_key=settings.OPENAI_API_KEY
            )
            embeddings = OpenAIEmbeddings(
                model=settings.EMBEDDING_MODEL,
                api_key=settings.OPENAI_API_KEY
            )
        except Exception as e:
            agent_logger.log_error(
                classify_error(e, ErrorStep.LLM_CALL, {"operation": "Failed to initialize LLM or embeddings"})
            )
            raise

        logger.info("LLM and embeddings initialized successfully", model=settings.CHAT_MODEL)

        search_service = MilvusSearchService(
            uri=settings.MILVUS_URI,
            collection_name=settings.MILVUS_COLLECTION,
            token=settings.MILVUS_TOKEN
        )

        return cls(embeddings=embeddings, llm=llm, search_service=search_service)

    async def startup(self) -> None:
        """Open collaborator connections"""

        if self.started:
            return

        try:
            self.search_service.connect()
        except AppError as e:
            agent_logger.log_error(e)
            raise

        self.started = True
        logger.info("Agent services started")

    async def shutdown(self) -> None:
        """Release collaborator connections"""

        if not self.started:
            return

        self.search_service.close()
        self.started = False
        logger.info("Agent services stopped")
