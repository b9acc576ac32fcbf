"""Study canvas: node graph orchestration for generated study material."""
