"""
RAG Q&A - Demo Script

This script demonstrates the complete RAG workflow:
1. Ingest documents (files and/or inline text)
2. Ask questions
3. Get answers grounded in the indexed documents

BEFORE RUNNING:
1. Create a .env file
2. Set OPENAI_API_KEY=your-api-key

RUN:
    python demo.py                       # built-in sample documents
    python demo.py notes.md report.pdf   # your own files
    python demo.py --top-k 3 --threshold 0.4 notes.md
"""

import argparse

from config.settings import get_settings
from ragcore import RAGError, create_rag_system
from ragcore.logger import configure_logging

SAMPLE_DOCUMENTS = [
    ("Paris is the capital of France.", "geography"),
    ("The Eiffel Tower was completed in 1889 for the World's Fair.", "history"),
    ("Python lists are ordered, mutable sequences.", "programming"),
]


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Ingest documents and ask questions about them.")
    parser.add_argument("files", nargs="*", help=".txt, .md or .pdf files to ingest")
    parser.add_argument("--top-k", type=int, default=None, help="documents to retrieve per question")
    parser.add_argument("--threshold", type=float, default=None, help="minimum cosine similarity")
    parser.add_argument("--model", default=None, help="chat model for answers")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.logging.level)

    print("=" * 60)
    print("RAG Q&A Demo")
    print("=" * 60)
    print()

    with create_rag_system(settings) as rag:
        connections = rag.check_connections()
        print(f"OpenAI reachable: {connections['openai']}")
        print()

        # Step 1: Ingest documents
        print("Step 1: Ingesting documents...")
        if args.files:
            for path in args.files:
                result = rag.ingest_file(path)
                print(f"✓ {path} → {result.id} ({result.dimensions} dims)")
        else:
            for text, category in SAMPLE_DOCUMENTS:
                rag.ingest_document(text, category=category)
                print(f"✓ [{category}] {text}")
        print(f"✓ Index holds {rag.index.size()} documents\n")

        # Step 2: Interactive questions
        print("=" * 60)
        print("Ask your questions! Type 'quit' to exit")
        print("=" * 60)
        print()

        while True:
            question = input("Your question: ").strip()

            if question.lower() in ['quit', 'exit', 'q']:
                print("Goodbye!")
                break

            if not question:
                continue

            try:
                result = rag.query(
                    question,
                    top_k=args.top_k,
                    score_threshold=args.threshold,
                    generation_model=args.model
                )
            except RAGError as exc:
                print(f"\n⚠️ {exc.message}\n")
                continue

            print(f"\nAnswer: {result.generated_text}")
            for hit in result.retrieved:
                print(f"  📚 {hit.score:.3f} [{hit.category}] {hit.text[:60]}")
            print(
                f"(Context: {result.context_count}, avg similarity: {result.avg_similarity:.3f}, "
                f"tokens: {result.tokens_used}, time: {result.timing['total_ms']:.0f}ms)\n"
            )


if __name__ == "__main__":
    main()
